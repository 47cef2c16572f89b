"""Tests for the viewer-side state."""

import pytest

from conftest import make_disk, make_snapshot
from resmon.models import SystemDescription
from resmon.tracking import SessionState
from resmon.viewer import MetricsViewer


@pytest.fixture
def viewer(timers, tmp_path):
    return MetricsViewer(timers, report_dir=tmp_path)


class TestMetricsViewer:
    """Tests for MetricsViewer."""

    def test_connect_and_description(self, viewer):
        """Test the connection flag and description are recorded."""
        viewer.on_connect()
        viewer.on_system_info(SystemDescription.unknown().to_wire())
        assert viewer.connected
        assert viewer.description.display_name == "Unknown System"
        assert viewer.renderer.description is viewer.description

    def test_metrics_update_history(self, viewer):
        """Test a metrics event pushes one point to every chart."""
        viewer.on_metrics(make_snapshot(cpu=77.0).to_wire())
        assert viewer.history.cpu.latest == 77.0
        assert len(viewer.history.cpu) == 60
        assert viewer.latest.cpu.current_load == 77.0

    def test_disk_rebuild_flag(self, viewer):
        """Test a change in volume count marks the disk chart stale."""
        viewer.on_metrics(make_snapshot().to_wire())
        assert viewer.disk_chart_stale
        viewer.disk_chart_stale = False
        viewer.on_metrics(make_snapshot().to_wire())
        assert not viewer.disk_chart_stale
        viewer.on_metrics(make_snapshot(disks=(make_disk("/"), make_disk("/home"))).to_wire())
        assert viewer.disk_chart_stale

    def test_malformed_metrics(self, viewer):
        """Test a malformed event is reported and leaves the history alone."""
        before = viewer.history.cpu.values()
        assert viewer.on_metrics({"cpu": {}}) is False
        assert viewer.error
        assert viewer.history.cpu.values() == before

    def test_metrics_error_then_recovery(self, viewer):
        """Test an error message is shown until the next good sample."""
        viewer.on_metrics_error({"message": "sensor offline"})
        assert viewer.error == "sensor offline"
        viewer.on_metrics(make_snapshot().to_wire())
        assert viewer.error is None

    def test_listeners_notified(self, viewer):
        """Test listeners run after each change and can be removed."""
        calls = []
        listener = lambda: calls.append(1)  # noqa: E731
        viewer.add_listener(listener)
        viewer.on_connect()
        viewer.on_metrics(make_snapshot().to_wire())
        viewer.remove_listener(listener)
        viewer.on_disconnect()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_tracking_renders_report(self, viewer, timers):
        """Test a completed session writes a report file."""
        assert viewer.start_tracking()
        for cpu in (10.0, 50.0, 90.0):
            viewer.on_metrics(make_snapshot(cpu=cpu).to_wire())
        await timers.advance(300)
        assert viewer.tracking.state is SessionState.IDLE
        assert viewer.last_report.statistics.cpu.avg == 50.0
        assert viewer.last_report_path.exists()

    @pytest.mark.asyncio
    async def test_disconnect_cancels_tracking(self, viewer, timers):
        """Test losing the connection discards the session without a report."""
        viewer.on_connect()
        viewer.start_tracking()
        viewer.on_metrics(make_snapshot().to_wire())
        viewer.on_disconnect()
        await timers.advance(300)
        assert viewer.tracking.state is SessionState.IDLE
        assert viewer.last_report is None

    def test_stop_tracking_early(self, viewer):
        """Test stop produces a report from what was captured."""
        viewer.start_tracking()
        viewer.on_metrics(make_snapshot(cpu=33.0).to_wire())
        report = viewer.stop_tracking()
        assert report.sample_count == 1
        assert viewer.last_report is report
