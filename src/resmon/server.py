"""resmon server: samples the host and pushes metrics over Socket.IO."""

import argparse
import os
from typing import Any

import socketio
from aiohttp import web

from resmon.broadcaster import (
    START_TRACKING_EVENT,
    STOP_TRACKING_EVENT,
    MetricsBroadcaster,
)
from resmon.config import Settings
from resmon.errors import ConfigError, SensorError, TransportError
from resmon.logger import get_logger, setup_logging
from resmon.models import SystemDescription
from resmon.sampler import Sensors, SnapshotSampler
from resmon.timers import AsyncioTimerService, TimerService

logger = get_logger(__name__)


class SocketIOChannel:
    """``ViewerChannel`` for one Socket.IO connection."""

    def __init__(self, sio: socketio.AsyncServer, sid: str) -> None:
        self._sio = sio
        self._sid = sid

    @property
    def viewer_id(self) -> str:
        return self._sid

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._sio.emit(event, payload, to=self._sid)
        except (socketio.exceptions.SocketIOError, ConnectionError, RuntimeError) as e:
            raise TransportError(f"emit '{event}' to {self._sid} failed: {e}") from e


class MonitorServer:
    """
    Wires the sampler and broadcaster into an aiohttp application.

    The system description is queried once during application startup and
    retained for the life of the process.
    """

    def __init__(
        self,
        settings: Settings,
        sensors: Sensors | None = None,
        timers: TimerService | None = None,
    ) -> None:
        if sensors is None:
            from resmon.sensors import PsutilSensors

            sensors = PsutilSensors()
        self.settings = settings
        self.sampler = SnapshotSampler(
            sensors,
            process_limit=settings.process_limit,
            command_width=settings.command_width,
            max_age=settings.sample_period / 2,
        )
        self.timers = timers or AsyncioTimerService()
        self.broadcaster: MetricsBroadcaster | None = None
        self.sio = socketio.AsyncServer(async_mode="aiohttp", cors_allowed_origins="*")
        self._register_handlers()

    def _register_handlers(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on(START_TRACKING_EVENT, self.on_start_tracking)
        self.sio.on(STOP_TRACKING_EVENT, self.on_stop_tracking)

    async def startup(self, app: web.Application | None = None) -> None:
        try:
            description = await self.sampler.describe()
        except SensorError as e:
            logger.error("Error getting system info: %s", e)
            description = SystemDescription.unknown()
        self.broadcaster = MetricsBroadcaster(
            self.sampler,
            description,
            self.timers,
            period=self.settings.sample_period,
            tracking_duration=self.settings.tracking_duration,
        )
        logger.info("System description ready for %s", description.hostname or "unknown host")

    async def shutdown(self, app: web.Application | None = None) -> None:
        if self.broadcaster is not None:
            await self.broadcaster.close()

    async def on_connect(self, sid: str, environ: dict, auth: Any = None) -> bool:
        if self.broadcaster is None:
            logger.warning("Rejecting viewer %s: server still starting", sid)
            return False
        logger.debug("Client connected: %s", sid)
        return await self.broadcaster.connect(SocketIOChannel(self.sio, sid)) is not None

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        logger.debug("Client disconnected: %s (%s)", sid, reason)
        if self.broadcaster is not None:
            await self.broadcaster.disconnect(sid)

    async def on_start_tracking(self, sid: str, data: Any = None) -> bool:
        if self.broadcaster is None:
            return False
        started = await self.broadcaster.start_tracking(sid)
        if not started:
            logger.debug("Ignoring startTracking from %s: already tracking", sid)
        return started

    async def on_stop_tracking(self, sid: str, data: Any = None) -> bool:
        if self.broadcaster is None:
            return False
        return await self.broadcaster.stop_tracking(sid)

    def create_app(self) -> web.Application:
        """Build the aiohttp application serving Socket.IO and static assets."""
        app = web.Application()
        self.sio.attach(app)
        app.on_startup.append(self.startup)
        app.on_shutdown.append(self.shutdown)

        static_dir = self.settings.static_dir
        if static_dir:
            if not os.path.isdir(static_dir):
                raise ConfigError(f"static_dir does not exist: {static_dir}")
            index = os.path.join(static_dir, "index.html")

            async def serve_index(request: web.Request) -> web.FileResponse:
                return web.FileResponse(index)

            if os.path.exists(index):
                app.router.add_get("/", serve_index)
            app.router.add_static("/static/", static_dir)
        return app


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream host metrics to resmon viewers.")
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument("--host", help="Interface to bind")
    parser.add_argument("--port", type=int, help="Port for Socket.IO and static assets")
    parser.add_argument("--static-dir", help="Directory of static assets to serve")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, ...)")
    parser.add_argument("--log-file", help="Rotating log file path")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the resmon server."""
    args = parse_args(argv)
    settings = Settings.load(args.config).with_overrides(
        host=args.host,
        port=args.port,
        static_dir=args.static_dir,
        log_level=args.log_level,
        log_file=args.log_file,
    )
    setup_logging(settings.log_level, settings.log_file)

    server = MonitorServer(settings)
    logger.info("System Monitor running at http://localhost:%d", settings.port)
    web.run_app(server.create_app(), host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
