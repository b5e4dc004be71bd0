"""Data models for tabtop."""

from dataclasses import dataclass
from typing import NamedTuple


@dataclass(slots=True, frozen=True)
class ProcessInfo:
    """Immutable snapshot of a single process."""

    pid: int
    name: str
    cpu_percent: float  # 0.0 - 100.0 * core_count
    memory_bytes: int  # RSS


@dataclass(slots=True, frozen=True)
class DiskInfo:
    """Capacity of one mounted disk."""

    label: str
    mount_point: str
    total_bytes: int
    available_bytes: int

    @property
    def used_bytes(self) -> int:
        return max(self.total_bytes - self.available_bytes, 0)


@dataclass(slots=True, frozen=True)
class InterfaceTraffic:
    """Bytes moved by one network interface since the previous refresh."""

    name: str
    received_delta: int
    transmitted_delta: int


class NetworkSample(NamedTuple):
    """One entry of the network history: totals across all interfaces."""

    received: float
    transmitted: float
