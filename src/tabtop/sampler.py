"""Sampling engine and dashboard state for tabtop."""

import logging
import math
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from operator import attrgetter
from queue import Queue
from typing import TypeVar

from tabtop.models import DiskInfo, NetworkSample, ProcessInfo
from tabtop.telemetry import TelemetrySource
from tabtop.views import View, ViewSelector

logger = logging.getLogger(__name__)

HISTORY_SIZE = 100

T = TypeVar("T")


class RefreshPolicy(Enum):
    """Which telemetry categories a tick refreshes."""

    ALL = "all"
    ACTIVE = "active"


@dataclass(slots=True)
class Snapshot:
    """Latest telemetry, mutated in place by Sampler.tick()."""

    cpu_global: float = 0.0
    memory_used: int = 0
    memory_total: int = 0
    disks: list[DiskInfo] = field(default_factory=list)
    processes: list[ProcessInfo] = field(default_factory=list)
    network_history: deque[NetworkSample] = field(
        default_factory=lambda: deque(maxlen=HISTORY_SIZE)
    )
    tick_count: int = 0


@dataclass(slots=True, frozen=True)
class SnapshotFrame:
    """Read-only copy of a Snapshot handed to the presentation layer."""

    view: View
    cpu_global: float
    memory_used: int
    memory_total: int
    disks: tuple[DiskInfo, ...]
    processes: tuple[ProcessInfo, ...]
    network_history: tuple[NetworkSample, ...]
    tick_count: int

    @property
    def memory_percent(self) -> float:
        """Used memory as a percentage, 0.0 when the total is unknown."""
        if self.memory_total <= 0:
            return 0.0
        return self.memory_used / self.memory_total * 100.0

    @property
    def peak_traffic(self) -> float:
        """Largest received or transmitted value in the history."""
        return max((max(sample) for sample in self.network_history), default=0.0)


def _finite(value: object) -> float:
    """Coerce a reading to a float, using 0.0 for missing or non-finite values."""
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _to_process_info(raw: object) -> ProcessInfo | None:
    """Map one process record, or None when it has no usable pid."""
    try:
        pid = int(getattr(raw, "pid"))
    except (AttributeError, TypeError, ValueError):
        return None
    memory = _finite(getattr(raw, "memory_bytes", 0))
    return ProcessInfo(
        pid=pid,
        name=str(getattr(raw, "name", "") or ""),
        cpu_percent=_finite(getattr(raw, "cpu_percent", 0.0)),
        memory_bytes=int(memory) if memory > 0 else 0,
    )


class Sampler:
    """
    Owns the dashboard state and the tick protocol.

    A tick refreshes telemetry, then rebuilds the derived data for the
    active view only: the process list on the Processes view and one
    network history entry on the Network view. Data for other views is left
    as it was the last time that view was active.

    Telemetry failures never escape tick(); the affected field falls back
    to zero or empty and the rest of the cycle carries on.
    """

    def __init__(
        self,
        source: TelemetrySource,
        selector: ViewSelector | None = None,
        history_size: int = HISTORY_SIZE,
        refresh_policy: RefreshPolicy = RefreshPolicy.ALL,
    ) -> None:
        """
        Initialize the Sampler and fill the snapshot from a first full refresh.

        Args:
            source: Where telemetry comes from.
            selector: View cursor shared with the input handler.
            history_size: Capacity of the network history. Default 100.
            refresh_policy: Refresh everything each tick, or only what the
                active view needs.
        """
        if history_size < 1:
            raise ValueError(f"history_size must be positive, got {history_size}")
        self._source = source
        self.selector = selector if selector is not None else ViewSelector()
        self.refresh_policy = refresh_policy
        self._quit = threading.Event()
        self._snapshot = Snapshot(network_history=deque(maxlen=history_size))

        self._guard("refresh_all", source.refresh_all)
        self._guard("refresh_disks", lambda: source.refresh_disks(True))
        self._guard("refresh_networks", lambda: source.refresh_networks(True))
        self._update_system()
        self._update_disks()

    @property
    def snapshot(self) -> Snapshot:
        """The live snapshot. Only tick() may change it."""
        return self._snapshot

    @property
    def view(self) -> View:
        return self.selector.current()

    @property
    def should_quit(self) -> bool:
        """Whether quit() has been called."""
        return self._quit.is_set()

    def quit(self) -> None:
        """Raise the quit flag. Calling it again has no further effect."""
        self._quit.set()

    def tick(self) -> None:
        """Run one sampling cycle for the active view."""
        view = self.selector.current()

        if self.refresh_policy is RefreshPolicy.ALL:
            self._refresh_system()
            self._refresh_disks()
            self._refresh_networks()
        elif view is View.OVERVIEW:
            self._refresh_system()
            self._refresh_disks()
        elif view is View.PROCESSES:
            self._refresh_system()
        else:
            self._refresh_networks()

        if view is View.PROCESSES:
            self._update_processes()
        elif view is View.NETWORK:
            self._update_network()

        self._snapshot.tick_count += 1

    def frame(self) -> SnapshotFrame:
        """Copy the current state into an immutable frame."""
        snap = self._snapshot
        return SnapshotFrame(
            view=self.selector.current(),
            cpu_global=snap.cpu_global,
            memory_used=snap.memory_used,
            memory_total=snap.memory_total,
            disks=tuple(snap.disks),
            processes=tuple(snap.processes),
            network_history=tuple(snap.network_history),
            tick_count=snap.tick_count,
        )

    def _refresh_system(self) -> None:
        self._guard("refresh_all", self._source.refresh_all)
        self._update_system()

    def _refresh_disks(self) -> None:
        self._guard("refresh_disks", lambda: self._source.refresh_disks(True))
        self._update_disks()

    def _refresh_networks(self) -> None:
        self._guard("refresh_networks", lambda: self._source.refresh_networks(True))

    def _update_system(self) -> None:
        snap = self._snapshot
        snap.cpu_global = self._read("cpu", 0.0, self._source.global_cpu_percent)
        snap.memory_used = self._read("memory_used", 0, self._source.used_memory_bytes)
        snap.memory_total = self._read("memory_total", 0, self._source.total_memory_bytes)

    def _update_disks(self) -> None:
        self._snapshot.disks = list(self._read("disks", [], self._source.list_disks))

    def _update_processes(self) -> None:
        """Rebuild the process list, busiest first."""
        raw = self._read("processes", [], self._source.list_processes)
        processes = []
        for record in raw:
            proc = _to_process_info(record)
            if proc is None:
                logger.debug("Skipping process record without a pid: %r", record)
                continue
            processes.append(proc)
        # sorted() is stable, also with reverse=True
        self._snapshot.processes = sorted(
            processes, key=attrgetter("cpu_percent"), reverse=True
        )

    def _update_network(self) -> None:
        """Append the summed per-interface deltas to the history."""
        interfaces = self._read("networks", [], self._source.list_network_interfaces)
        received = sum(_finite(getattr(iface, "received_delta", 0)) for iface in interfaces)
        transmitted = sum(_finite(getattr(iface, "transmitted_delta", 0)) for iface in interfaces)
        # maxlen evicts from the left once the history is full
        self._snapshot.network_history.append(NetworkSample(received, transmitted))

    def _guard(self, what: str, refresh: Callable[[], None]) -> None:
        try:
            refresh()
        except Exception:
            logger.debug("Telemetry %s failed", what, exc_info=True)

    def _read(self, what: str, default: T, reader: Callable[[], T]) -> T:
        try:
            return reader()
        except Exception:
            logger.debug("Telemetry read %s failed, using default", what, exc_info=True)
            return default


class SamplerWorker:
    """
    Runs a Sampler in a background thread.

    Each completed tick is pushed to a thread-safe Queue as a SnapshotFrame,
    so readers never see a half-updated state. The worker thread is the only
    one that calls tick().
    """

    def __init__(
        self,
        sampler: Sampler,
        update_queue: Queue[SnapshotFrame],
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the SamplerWorker.

        Args:
            sampler: The sampler to drive.
            update_queue: Thread-safe queue to push frames to.
            poll_rate: How often to tick (in seconds). Default 2.0s.
        """
        self._sampler = sampler
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the worker thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the worker thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SamplerWorker",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the worker thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set() and not self._sampler.should_quit:
            try:
                self._sampler.tick()
                self._queue.put(self._sampler.frame())
            except Exception:
                logger.exception("Sampler tick failed")

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)
