"""Tests for the rolling chart history."""

import pytest

from conftest import START_TIME, make_disk, make_snapshot
from resmon.window import CHANNELS, ChartHistory, DiskUsageView, RollingWindow, format_label


class TestRollingWindow:
    """Tests for RollingWindow."""

    def test_starts_full_of_fill_value(self):
        """Test a new window already holds capacity entries."""
        window = RollingWindow(60)
        assert len(window) == 60
        assert window.values() == [0.0] * 60

    def test_push_evicts_oldest(self):
        """Test the length never changes and order is oldest first."""
        window = RollingWindow(3)
        for value in (1.0, 2.0, 3.0, 4.0):
            window.push(value)
        assert len(window) == 3
        assert window.values() == [2.0, 3.0, 4.0]
        assert window.latest == 4.0

    def test_length_constant_over_many_pushes(self):
        """Test length stays at capacity after many pushes."""
        window = RollingWindow(60)
        for i in range(500):
            window.push(float(i))
            assert len(window) == 60
        assert list(window)[0] == 440.0

    def test_rejects_non_positive_capacity(self):
        """Test a window must hold at least one entry."""
        with pytest.raises(ValueError):
            RollingWindow(0)


class TestChartHistory:
    """Tests for ChartHistory."""

    def test_initial_labels_count_backward_one_second(self):
        """Test labels start as the last minute ending now."""
        history = ChartHistory(60, clock=lambda: START_TIME)
        labels = history.labels.values()
        assert len(labels) == 60
        assert labels[-1] == format_label(START_TIME)
        assert labels[0] == format_label(START_TIME - 59)

    def test_initial_series_are_zero(self):
        """Test every channel starts as a zero-valued minute."""
        history = ChartHistory(60, clock=lambda: START_TIME)
        for name in CHANNELS:
            assert history.series(name) == [0.0] * 60

    def test_push_snapshot_moves_every_channel(self):
        """Test one push appends one value to each channel and one label."""
        now = [START_TIME]
        history = ChartHistory(60, clock=lambda: now[0])
        now[0] += 1
        history.push_snapshot(make_snapshot(cpu=40.0, memory_percent=50.0, rx=10.0, tx=20.0))
        assert history.cpu.latest == 40.0
        assert history.memory.latest == 50.0
        assert history.network_rx.latest == 10.0
        assert history.network_tx.latest == 20.0
        assert history.labels.latest == format_label(START_TIME + 1)
        assert all(len(history.series(name)) == 60 for name in CHANNELS)

    def test_push_missing_channel_changes_nothing(self):
        """Test an incomplete update leaves every window untouched."""
        history = ChartHistory(5, clock=lambda: START_TIME)
        before = {name: history.series(name) for name in CHANNELS}
        with pytest.raises(KeyError):
            history.push({"cpu": 1.0, "memory": 2.0}, "label")
        assert {name: history.series(name) for name in CHANNELS} == before


class TestDiskUsageView:
    """Tests for DiskUsageView."""

    def test_first_update_builds(self):
        """Test the first non-empty update asks for a build."""
        view = DiskUsageView()
        assert view.update([make_disk("/"), make_disk("/home")]) is True
        assert len(view.volumes) == 2

    def test_same_count_updates_in_place(self):
        """Test an update with the same volume count does not rebuild."""
        view = DiskUsageView()
        view.update([make_disk("/")])
        assert view.update([make_disk("/", used=900)]) is False
        assert view.volumes[0].used == 900

    def test_count_change_rebuilds(self):
        """Test a volume appearing forces a rebuild."""
        view = DiskUsageView()
        view.update([make_disk("/")])
        assert view.update([make_disk("/"), make_disk("/mnt/usb")]) is True

    def test_zero_size_volumes_are_ignored(self):
        """Test volumes with no size are not charted."""
        view = DiskUsageView()
        view.update([make_disk("/"), make_disk("/proc", size=0, used=0)])
        assert [d.mount for d in view.volumes] == ["/"]

    def test_empty_disk_list_keeps_previous(self):
        """Test a snapshot without disk data leaves the view alone."""
        view = DiskUsageView()
        view.update([make_disk("/")])
        assert view.update([]) is False
        assert len(view.volumes) == 1
