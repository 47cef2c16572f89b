"""Socket.IO client feeding a ``MetricsViewer``."""

from typing import Any

import socketio

from resmon.broadcaster import METRICS_ERROR_EVENT, METRICS_EVENT, SYSTEM_INFO_EVENT
from resmon.errors import TransportError
from resmon.logger import get_logger
from resmon.viewer import MetricsViewer

logger = get_logger(__name__)


class ViewerClient:
    """Connects to a resmon server and routes its events into a viewer."""

    def __init__(
        self,
        server_url: str,
        viewer: MetricsViewer,
        sio: socketio.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            server_url: Base URL of the resmon server.
            viewer: State object receiving the events.
            sio: Socket.IO client to use; a reconnecting one is created by default.
        """
        self.server_url = server_url
        self.viewer = viewer
        self.sio = sio or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=0,
            reconnection_delay=1,
            reconnection_delay_max=5,
        )
        self._register_handlers()

    @property
    def connected(self) -> bool:
        return self.viewer.connected

    def _register_handlers(self) -> None:
        self.sio.on("connect", self._on_connect)
        self.sio.on("connect_error", self._on_connect_error)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on(SYSTEM_INFO_EVENT, self._on_system_info)
        self.sio.on(METRICS_EVENT, self._on_metrics)
        self.sio.on(METRICS_ERROR_EVENT, self._on_metrics_error)

    async def connect(self) -> None:
        """
        Open the connection; reconnects are handled by the Socket.IO client.

        Raises:
            TransportError: If the server cannot be reached.
        """
        logger.info("Connecting to %s", self.server_url)
        try:
            await self.sio.connect(self.server_url)
        except socketio.exceptions.ConnectionError as e:
            raise TransportError(f"Could not connect to {self.server_url}: {e}") from e

    async def disconnect(self) -> None:
        await self.sio.disconnect()

    async def _on_connect(self) -> None:
        self.viewer.on_connect()

    async def _on_connect_error(self, data: Any = None) -> None:
        logger.error("Connection to server failed: %s", data)

    async def _on_disconnect(self, reason: Any = None) -> None:
        self.viewer.on_disconnect()

    async def _on_system_info(self, data: dict[str, Any]) -> None:
        self.viewer.on_system_info(data)

    async def _on_metrics(self, data: dict[str, Any]) -> None:
        self.viewer.on_metrics(data)

    async def _on_metrics_error(self, data: dict[str, Any]) -> None:
        self.viewer.on_metrics_error(data)
