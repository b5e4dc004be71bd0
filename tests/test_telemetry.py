"""Tests for the psutil telemetry source."""

from types import SimpleNamespace
from unittest.mock import patch

import psutil

from tabtop.models import DiskInfo, InterfaceTraffic, ProcessInfo
from tabtop.telemetry import PsutilTelemetry


def counters(**interfaces: tuple[int, int]) -> dict[str, SimpleNamespace]:
    return {
        name: SimpleNamespace(bytes_recv=recv, bytes_sent=sent)
        for name, (recv, sent) in interfaces.items()
    }


class TestPsutilTelemetry:
    """Tests against the live system."""

    def test_reads_memory(self):
        """Test memory totals come from the host."""
        source = PsutilTelemetry()
        assert source.total_memory_bytes() > 0
        assert 0 <= source.used_memory_bytes() <= source.total_memory_bytes()

    def test_cpu_is_a_float(self):
        """Test the global CPU reading type."""
        source = PsutilTelemetry()
        source.refresh_all()
        assert isinstance(source.global_cpu_percent(), float)

    def test_lists_processes(self):
        """Test the process table includes this test run."""
        source = PsutilTelemetry()
        processes = source.list_processes()

        assert len(processes) > 0
        for proc in processes[:5]:
            assert isinstance(proc, ProcessInfo)
            assert isinstance(proc.name, str)
            assert isinstance(proc.cpu_percent, float)
            assert isinstance(proc.memory_bytes, int)
        assert psutil.Process().pid in {proc.pid for proc in processes}

    def test_lists_disks(self):
        """Test disk entries are well formed."""
        source = PsutilTelemetry()
        for disk in source.list_disks():
            assert isinstance(disk, DiskInfo)
            assert disk.total_bytes >= 0
            assert disk.available_bytes >= 0

    def test_accessors_return_copies(self):
        """Test callers can't mutate the source's tables."""
        source = PsutilTelemetry()
        source.list_processes().clear()
        assert len(source.list_processes()) > 0


class TestNetworkDeltas:
    """Tests for per-interface delta tracking."""

    def test_first_refresh_reports_zero(self):
        """Test there's no delta before a baseline exists."""
        with patch(
            "tabtop.telemetry.psutil.net_io_counters",
            return_value=counters(eth0=(5000, 1000)),
        ):
            source = PsutilTelemetry()

        assert source.list_network_interfaces() == [InterfaceTraffic("eth0", 0, 0)]

    def test_delta_since_previous_refresh(self):
        """Test deltas, not cumulative totals, are reported."""
        with patch("tabtop.telemetry.psutil.net_io_counters") as net:
            net.return_value = counters(eth0=(5000, 1000), lo=(10, 10))
            source = PsutilTelemetry()

            net.return_value = counters(eth0=(5600, 1100), lo=(20, 30))
            source.refresh_networks(exhaustive=True)
            assert source.list_network_interfaces() == [
                InterfaceTraffic("eth0", 600, 100),
                InterfaceTraffic("lo", 10, 20),
            ]

            net.return_value = counters(eth0=(5700, 1100), lo=(20, 30))
            source.refresh_networks(exhaustive=True)
            assert source.list_network_interfaces() == [
                InterfaceTraffic("eth0", 100, 0),
                InterfaceTraffic("lo", 0, 0),
            ]

    def test_counter_reset_counts_nothing(self):
        """Test a counter that went backwards gives a zero delta."""
        with patch("tabtop.telemetry.psutil.net_io_counters") as net:
            net.return_value = counters(eth0=(5000, 1000))
            source = PsutilTelemetry()

            net.return_value = counters(eth0=(100, 50))
            source.refresh_networks(exhaustive=True)
            assert source.list_network_interfaces() == [InterfaceTraffic("eth0", 0, 0)]

            net.return_value = counters(eth0=(400, 80))
            source.refresh_networks(exhaustive=True)
            assert source.list_network_interfaces() == [InterfaceTraffic("eth0", 300, 30)]

    def test_exhaustive_refresh_drops_vanished_interfaces(self):
        """Test interfaces that disappear are forgotten."""
        with patch("tabtop.telemetry.psutil.net_io_counters") as net:
            net.return_value = counters(eth0=(0, 0), wlan0=(0, 0))
            source = PsutilTelemetry()

            net.return_value = counters(eth0=(10, 10))
            source.refresh_networks(exhaustive=True)

        assert [iface.name for iface in source.list_network_interfaces()] == ["eth0"]

    def test_partial_refresh_keeps_vanished_interfaces(self):
        """Test a non-exhaustive refresh keeps missing interfaces at zero."""
        with patch("tabtop.telemetry.psutil.net_io_counters") as net:
            net.return_value = counters(eth0=(0, 0), wlan0=(0, 0))
            source = PsutilTelemetry()

            net.return_value = counters(eth0=(10, 10))
            source.refresh_networks(exhaustive=False)

        traffic = {iface.name: iface for iface in source.list_network_interfaces()}
        assert traffic["eth0"] == InterfaceTraffic("eth0", 10, 10)
        assert traffic["wlan0"] == InterfaceTraffic("wlan0", 0, 0)


class TestDisks:
    """Tests for disk refresh behaviour."""

    def test_unreadable_mount_is_skipped(self):
        """Test a mount that can't be read is left out."""
        partitions = [
            SimpleNamespace(device="/dev/sda1", mountpoint="/"),
            SimpleNamespace(device="/dev/sdb1", mountpoint="/mnt/gone"),
        ]

        def usage(path):
            if path == "/mnt/gone":
                raise PermissionError(path)
            return SimpleNamespace(total=1000, free=400)

        with patch("tabtop.telemetry.psutil.disk_partitions", return_value=partitions), patch(
            "tabtop.telemetry.psutil.disk_usage", side_effect=usage
        ):
            source = PsutilTelemetry()

        assert source.list_disks() == [DiskInfo("/dev/sda1", "/", 1000, 400)]

    def test_partial_refresh_reuses_partition_list(self):
        """Test a non-exhaustive refresh only re-reads known mounts."""
        partitions = [SimpleNamespace(device="/dev/sda1", mountpoint="/")]
        usage = SimpleNamespace(total=1000, free=400)

        with patch(
            "tabtop.telemetry.psutil.disk_partitions", return_value=partitions
        ) as listing, patch("tabtop.telemetry.psutil.disk_usage", return_value=usage):
            source = PsutilTelemetry()
            source.refresh_disks(exhaustive=False)
            assert listing.call_count == 1

            source.refresh_disks(exhaustive=True)
            assert listing.call_count == 2


class TestRefreshIsolation:
    """Tests that one failing reading doesn't stall the others."""

    def test_memory_failure_keeps_processes_fresh(self):
        """Test a memory error zeroes memory and still re-reads processes."""
        source = PsutilTelemetry()

        with patch(
            "tabtop.telemetry.psutil.virtual_memory", side_effect=OSError("no meminfo")
        ), patch.object(
            source, "_collect_processes", return_value=[ProcessInfo(1, "init", 0.0, 0)]
        ):
            source.refresh_all()

        assert source.used_memory_bytes() == 0
        assert source.total_memory_bytes() == 0
        assert source.list_processes() == [ProcessInfo(1, "init", 0.0, 0)]

    def test_process_failure_empties_table(self):
        """Test a failed enumeration isn't replaced by the previous table."""
        source = PsutilTelemetry()
        assert source.list_processes()

        with patch("tabtop.telemetry.psutil.process_iter", side_effect=psutil.AccessDenied()):
            source.refresh_all()

        assert source.list_processes() == []
        assert source.total_memory_bytes() > 0
