"""Telemetry sources for tabtop."""

import logging
from collections.abc import Sequence
from typing import Protocol

import psutil

from tabtop.models import DiskInfo, InterfaceTraffic, ProcessInfo

logger = logging.getLogger(__name__)


class TelemetrySource(Protocol):
    """
    What the sampler needs from the operating system.

    The refresh methods update internal tables synchronously; the accessor
    methods read those tables without touching the OS again.
    """

    def refresh_all(self) -> None: ...

    def refresh_disks(self, exhaustive: bool) -> None: ...

    def refresh_networks(self, exhaustive: bool) -> None: ...

    def global_cpu_percent(self) -> float: ...

    def used_memory_bytes(self) -> int: ...

    def total_memory_bytes(self) -> int: ...

    def list_processes(self) -> Sequence[ProcessInfo]: ...

    def list_disks(self) -> Sequence[DiskInfo]: ...

    def list_network_interfaces(self) -> Sequence[InterfaceTraffic]: ...


class PsutilTelemetry:
    """
    Telemetry source backed by psutil.

    Network counters from psutil are cumulative, so this source keeps the
    previous reading per interface and reports the difference on each
    refresh. Processes that vanish or deny access mid-poll are skipped.
    """

    _PROCESS_ATTRS = ["pid", "name", "cpu_percent", "memory_info"]

    def __init__(self) -> None:
        """Initialize the source and take the first full reading."""
        self._cpu_percent = 0.0
        self._memory_used = 0
        self._memory_total = 0
        self._processes: list[ProcessInfo] = []
        self._partitions: list[tuple[str, str]] = []
        self._disks: list[DiskInfo] = []
        self._counters: dict[str, tuple[int, int]] = {}
        self._traffic: dict[str, InterfaceTraffic] = {}
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(interval=None)
        self.refresh_all()
        self.refresh_disks(exhaustive=True)
        self.refresh_networks(exhaustive=True)

    def refresh_all(self) -> None:
        """
        Refresh CPU, memory and the process table.

        Each category is read on its own; one that fails is reset to zero or
        empty so a stale value is never served as fresh.
        """
        try:
            self._cpu_percent = psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError):
            logger.debug("CPU reading failed", exc_info=True)
            self._cpu_percent = 0.0

        try:
            mem = psutil.virtual_memory()
            self._memory_used = mem.used
            self._memory_total = mem.total
        except (psutil.Error, OSError):
            logger.debug("Memory reading failed", exc_info=True)
            self._memory_used = self._memory_total = 0

        try:
            self._processes = self._collect_processes()
        except (psutil.Error, OSError):
            logger.debug("Process enumeration failed", exc_info=True)
            self._processes = []

    def refresh_disks(self, exhaustive: bool) -> None:
        """
        Refresh disk capacities.

        Args:
            exhaustive: Re-list mounted partitions before reading usage.
                Otherwise only the partitions known from the last listing
                are read again.
        """
        if exhaustive or not self._partitions:
            self._partitions = [
                (part.device, part.mountpoint) for part in psutil.disk_partitions(all=False)
            ]

        disks: list[DiskInfo] = []
        for device, mount_point in self._partitions:
            try:
                usage = psutil.disk_usage(mount_point)
            except OSError:
                # Unmounted since listing, or not readable by this user
                logger.debug("Skipping unreadable mount %s", mount_point)
                continue
            disks.append(
                DiskInfo(
                    label=device,
                    mount_point=mount_point,
                    total_bytes=usage.total,
                    available_bytes=usage.free,
                )
            )
        self._disks = disks

    def refresh_networks(self, exhaustive: bool) -> None:
        """
        Refresh per-interface byte deltas.

        Args:
            exhaustive: Forget interfaces that are no longer reported.
                Otherwise they stay listed with a zero delta.
        """
        counters = psutil.net_io_counters(pernic=True)
        traffic: dict[str, InterfaceTraffic] = {}

        for name, stats in counters.items():
            previous = self._counters.get(name)
            received, transmitted = stats.bytes_recv, stats.bytes_sent
            if previous is None:
                rx_delta = tx_delta = 0
            else:
                # A counter that went backwards was reset; count nothing.
                rx_delta = max(received - previous[0], 0)
                tx_delta = max(transmitted - previous[1], 0)
            self._counters[name] = (received, transmitted)
            traffic[name] = InterfaceTraffic(name, rx_delta, tx_delta)

        for name in list(self._counters):
            if name in counters:
                continue
            if exhaustive:
                del self._counters[name]
            else:
                traffic[name] = InterfaceTraffic(name, 0, 0)

        self._traffic = traffic

    def global_cpu_percent(self) -> float:
        return self._cpu_percent

    def used_memory_bytes(self) -> int:
        return self._memory_used

    def total_memory_bytes(self) -> int:
        return self._memory_total

    def list_processes(self) -> list[ProcessInfo]:
        return list(self._processes)

    def list_disks(self) -> list[DiskInfo]:
        return list(self._disks)

    def list_network_interfaces(self) -> list[InterfaceTraffic]:
        return list(self._traffic.values())

    def _collect_processes(self) -> list[ProcessInfo]:
        """
        Collect all running processes in enumeration order.

        psutil caches Process objects across process_iter() calls, so
        cpu_percent reflects usage since the previous refresh.
        """
        processes: list[ProcessInfo] = []

        for proc in psutil.process_iter(attrs=self._PROCESS_ATTRS):
            try:
                info = proc.info
                mem_info = info.get("memory_info")
                processes.append(
                    ProcessInfo(
                        pid=info.get("pid") or proc.pid,
                        name=info.get("name") or "",
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_bytes=mem_info.rss if mem_info else 0,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

        return processes
