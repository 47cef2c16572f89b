"""Tests for the Socket.IO server glue."""

import pytest
import socketio

from resmon.broadcaster import METRICS_EVENT, SYSTEM_INFO_EVENT, TRACKING_STARTED_EVENT
from resmon.config import Settings
from resmon.errors import ConfigError, TransportError
from resmon.server import MonitorServer, SocketIOChannel, parse_args


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def server(sensors, timers, emitted, monkeypatch):
    server = MonitorServer(Settings(), sensors=sensors, timers=timers)

    async def fake_emit(event, data=None, to=None, **kwargs):
        emitted.append((to, event, data))

    monkeypatch.setattr(server.sio, "emit", fake_emit)
    return server


class TestSocketIOChannel:
    """Tests for SocketIOChannel."""

    @pytest.mark.asyncio
    async def test_emit_failure_becomes_transport_error(self, monkeypatch):
        """Test Socket.IO errors are reported as TransportError."""
        sio = socketio.AsyncServer(async_mode="aiohttp")

        async def broken_emit(*args, **kwargs):
            raise socketio.exceptions.SocketIOError("gone")

        monkeypatch.setattr(sio, "emit", broken_emit)
        with pytest.raises(TransportError):
            await SocketIOChannel(sio, "abc").emit(METRICS_EVENT, {})


class TestMonitorServer:
    """Tests for MonitorServer."""

    @pytest.mark.asyncio
    async def test_rejects_viewers_before_startup(self, server):
        """Test connections are refused until the description is ready."""
        assert await server.on_connect("sid1", {}) is False

    @pytest.mark.asyncio
    async def test_connect_sends_system_info_then_metrics(self, server, timers, emitted):
        """Test a viewer gets the description and then periodic metrics."""
        await server.startup()
        assert await server.on_connect("sid1", {}) is True
        await timers.advance(2)
        assert [(to, event) for to, event, _ in emitted] == [
            ("sid1", SYSTEM_INFO_EVENT),
            ("sid1", METRICS_EVENT),
            ("sid1", METRICS_EVENT),
        ]
        assert emitted[0][2]["os"]["hostname"] == "testhost"

    @pytest.mark.asyncio
    async def test_failed_system_info_refuses_connection(self, server, monkeypatch):
        """Test a viewer that never got the description is not accepted."""
        await server.startup()

        async def broken_emit(*args, **kwargs):
            raise socketio.exceptions.SocketIOError("gone")

        monkeypatch.setattr(server.sio, "emit", broken_emit)
        assert await server.on_connect("sid1", {}) is False
        assert server.broadcaster.viewer_count == 0

    @pytest.mark.asyncio
    async def test_description_failure_uses_placeholder(self, server, sensors, caplog):
        """Test a failed identity query still lets the server start."""
        sensors.failing.add("cpu")
        await server.startup()
        assert server.broadcaster.description.display_name == "Unknown System"
        assert "Error getting system info" in caplog.text

    @pytest.mark.asyncio
    async def test_disconnect_stops_ticks(self, server, timers, emitted):
        """Test a disconnected sid receives nothing further."""
        await server.startup()
        await server.on_connect("sid1", {})
        await server.on_disconnect("sid1")
        await timers.advance(5)
        assert len(emitted) == 1

    @pytest.mark.asyncio
    async def test_tracking_requests(self, server, emitted):
        """Test start and stop tracking requests reach the broadcaster."""
        await server.startup()
        await server.on_connect("sid1", {})
        assert await server.on_start_tracking("sid1") is True
        assert emitted[-1][1] == TRACKING_STARTED_EVENT
        assert await server.on_start_tracking("sid1") is False
        assert await server.on_stop_tracking("sid1") is True

    @pytest.mark.asyncio
    async def test_shutdown_closes_viewers(self, server, timers):
        """Test shutdown cancels every viewer loop."""
        await server.startup()
        await server.on_connect("sid1", {})
        await server.shutdown()
        assert timers.active() == []

    def test_static_dir_routes(self, tmp_path, sensors, timers):
        """Test a static directory serves its index and assets."""
        (tmp_path / "index.html").write_text("<html></html>")
        server = MonitorServer(
            Settings(static_dir=str(tmp_path)), sensors=sensors, timers=timers
        )
        app = server.create_app()
        paths = {resource.canonical for resource in app.router.resources()}
        assert "/" in paths
        assert "/static" in paths

    def test_missing_static_dir(self, tmp_path, sensors, timers):
        """Test a static directory that does not exist is a ConfigError."""
        server = MonitorServer(
            Settings(static_dir=str(tmp_path / "missing")), sensors=sensors, timers=timers
        )
        with pytest.raises(ConfigError):
            server.create_app()


def test_parse_args():
    """Test command line flags are parsed for the settings override."""
    args = parse_args(["--port", "8081", "--log-level", "DEBUG"])
    assert args.port == 8081
    assert args.log_level == "DEBUG"
    assert args.host is None
