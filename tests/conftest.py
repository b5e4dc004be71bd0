"""Shared fixtures for tabtop tests."""

import pytest

from tabtop.models import DiskInfo, InterfaceTraffic, ProcessInfo


class FakeTelemetry:
    """In-memory telemetry source with scriptable readings."""

    def __init__(self) -> None:
        self.cpu = 12.5
        self.memory_used = 4 * 1024**3
        self.memory_total = 16 * 1024**3
        self.processes: list[ProcessInfo] = [
            ProcessInfo(pid=1, name="init", cpu_percent=0.5, memory_bytes=10_000),
            ProcessInfo(pid=42, name="python", cpu_percent=30.0, memory_bytes=50_000_000),
            ProcessInfo(pid=7, name="sshd", cpu_percent=2.0, memory_bytes=4_000_000),
        ]
        self.disks: list[DiskInfo] = [
            DiskInfo("/dev/sda1", "/", 500 * 1024**3, 200 * 1024**3),
        ]
        self.interfaces: list[InterfaceTraffic] = [
            InterfaceTraffic("eth0", 1000, 200),
            InterfaceTraffic("lo", 24, 24),
        ]
        self.calls: list[str] = []
        self.fail: set[str] = set()

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise RuntimeError(f"{name} unavailable")

    def refresh_all(self) -> None:
        self._record("refresh_all")

    def refresh_disks(self, exhaustive: bool) -> None:
        self._record("refresh_disks")

    def refresh_networks(self, exhaustive: bool) -> None:
        self._record("refresh_networks")

    def global_cpu_percent(self) -> float:
        self._record("global_cpu_percent")
        return self.cpu

    def used_memory_bytes(self) -> int:
        self._record("used_memory_bytes")
        return self.memory_used

    def total_memory_bytes(self) -> int:
        self._record("total_memory_bytes")
        return self.memory_total

    def list_processes(self) -> list[ProcessInfo]:
        self._record("list_processes")
        return list(self.processes)

    def list_disks(self) -> list[DiskInfo]:
        self._record("list_disks")
        return list(self.disks)

    def list_network_interfaces(self) -> list[InterfaceTraffic]:
        self._record("list_network_interfaces")
        return list(self.interfaces)


@pytest.fixture
def telemetry() -> FakeTelemetry:
    """A fresh fake telemetry source."""
    return FakeTelemetry()
