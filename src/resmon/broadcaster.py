"""Per-viewer push loops.

Each connected viewer gets its own periodic tick on the timer service. A tick
asks the sampler for a snapshot, shared with ticks that land close by, and
pushes either a ``metrics`` event or a ``metricsError`` event. A failure in
one viewer's tick never touches another viewer.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from resmon.config import SAMPLE_PERIOD, TRACKING_DURATION
from resmon.errors import SensorError, TransportError
from resmon.logger import get_logger
from resmon.models import SystemDescription
from resmon.sampler import SnapshotSampler
from resmon.timers import TimerHandle, TimerService
from resmon.tracking import TrackingReport, TrackingSession

logger = get_logger(__name__)

SYSTEM_INFO_EVENT = "systemInfo"
METRICS_EVENT = "metrics"
METRICS_ERROR_EVENT = "metricsError"
START_TRACKING_EVENT = "startTracking"
STOP_TRACKING_EVENT = "stopTracking"
TRACKING_STARTED_EVENT = "trackingStarted"
TRACKING_REPORT_EVENT = "trackingReport"


class ViewerChannel(Protocol):
    """Push channel to one viewer."""

    @property
    def viewer_id(self) -> str: ...

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        """
        Deliver one event.

        Raises:
            TransportError: If the viewer can no longer be reached.
        """
        ...


@dataclass
class ViewerSession:
    """Server-side state for one connected viewer."""

    channel: ViewerChannel
    tracking: TrackingSession
    tick: TimerHandle | None = None
    ticks: int = 0
    pending_reports: list[TrackingReport] = field(default_factory=list)

    @property
    def viewer_id(self) -> str:
        return self.channel.viewer_id


class MetricsBroadcaster:
    """
    Fans snapshots out to connected viewers.

    The static system description is read-only after construction and is the
    only state shared between viewers.
    """

    def __init__(
        self,
        sampler: SnapshotSampler,
        description: SystemDescription,
        timers: TimerService,
        period: float = SAMPLE_PERIOD,
        tracking_duration: float = TRACKING_DURATION,
    ) -> None:
        self._sampler = sampler
        self._description = description
        self._timers = timers
        self._period = period
        self._tracking_duration = tracking_duration
        self._sessions: dict[str, ViewerSession] = {}

    @property
    def description(self) -> SystemDescription:
        return self._description

    @property
    def viewer_count(self) -> int:
        return len(self._sessions)

    def session(self, viewer_id: str) -> ViewerSession | None:
        return self._sessions.get(viewer_id)

    async def connect(self, channel: ViewerChannel) -> ViewerSession | None:
        """
        Register a viewer: send the system description, then start its tick.

        Returns:
            The viewer's session, or None if the channel failed immediately.
        """
        viewer_id = channel.viewer_id
        if viewer_id in self._sessions:
            # Reconnect with the same id; drop the stale loop first
            self._drop(viewer_id)

        # Reports from the countdown go out with the next tick
        pending: list[TrackingReport] = []
        tracking = TrackingSession(
            self._timers, on_complete=pending.append, duration=self._tracking_duration
        )
        session = ViewerSession(channel=channel, tracking=tracking, pending_reports=pending)
        self._sessions[viewer_id] = session
        logger.info("Viewer %s connected (%d total)", viewer_id, len(self._sessions))

        if not await self._send(session, SYSTEM_INFO_EVENT, self._description.to_wire()):
            return None

        session.tick = self._timers.call_every(
            self._period, lambda: self._tick(session), name=f"broadcast-{viewer_id}"
        )
        return session

    async def disconnect(self, viewer_id: str) -> None:
        """Forget a viewer and cancel its tick. Unknown ids are ignored."""
        if self._drop(viewer_id):
            logger.info("Viewer %s disconnected (%d remaining)", viewer_id, len(self._sessions))

    async def start_tracking(self, viewer_id: str) -> bool:
        """Start a server-side tracking session fed by this viewer's ticks."""
        session = self._sessions.get(viewer_id)
        if session is None or not session.tracking.start():
            return False
        await self._send(
            session, TRACKING_STARTED_EVENT, {"duration": session.tracking.duration}
        )
        return True

    async def stop_tracking(self, viewer_id: str) -> bool:
        """Finish a server-side tracking session early and send its report."""
        session = self._sessions.get(viewer_id)
        if session is None or session.tracking.stop() is None:
            return False
        await self._flush_reports(session)
        return True

    async def close(self) -> None:
        """Disconnect every viewer."""
        for viewer_id in list(self._sessions):
            self._drop(viewer_id)

    async def _tick(self, session: ViewerSession) -> None:
        if self._sessions.get(session.viewer_id) is not session:
            return
        session.ticks += 1

        try:
            snapshot = await self._sampler.sample()
        except SensorError as e:
            logger.warning("Sampling failed for viewer %s: %s", session.viewer_id, e)
            await self._send(session, METRICS_ERROR_EVENT, {"message": str(e)})
            await self._flush_reports(session)
            return

        if not await self._send(session, METRICS_EVENT, snapshot.to_wire()):
            return
        session.tracking.on_snapshot(snapshot)
        await self._flush_reports(session)

    async def _flush_reports(self, session: ViewerSession) -> None:
        while session.pending_reports:
            report = session.pending_reports.pop(0)
            if not await self._send(session, TRACKING_REPORT_EVENT, report.to_wire()):
                return

    async def _send(self, session: ViewerSession, event: str, payload: dict[str, Any]) -> bool:
        """Emit to one viewer; a transport failure disconnects only that viewer."""
        if self._sessions.get(session.viewer_id) is not session:
            return False
        try:
            await session.channel.emit(event, payload)
        except TransportError as e:
            logger.info("Dropping viewer %s after transport error: %s", session.viewer_id, e)
            self._drop(session.viewer_id, session)
            return False
        return True

    def _drop(self, viewer_id: str, session: ViewerSession | None = None) -> bool:
        current = self._sessions.get(viewer_id)
        if current is None or (session is not None and current is not session):
            return False
        del self._sessions[viewer_id]
        if current.tick is not None:
            current.tick.cancel()
            current.tick = None
        current.tracking.cancel()
        current.pending_reports.clear()
        return True
