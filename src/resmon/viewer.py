"""Viewer-side state, independent of any UI toolkit."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

from resmon.config import REPORT_DIR, TRACKING_DURATION, WINDOW_CAPACITY
from resmon.errors import RenderError
from resmon.logger import get_logger
from resmon.models import MetricsSnapshot, SystemDescription
from resmon.report import ReportRenderer
from resmon.timers import TimerService
from resmon.tracking import TrackingReport, TrackingSession
from resmon.window import ChartHistory, DiskUsageView

logger = get_logger(__name__)

Listener = Callable[[], None]


class MetricsViewer:
    """
    Applies push-channel events to the chart windows and tracking session.

    Listeners registered with ``add_listener`` are called after every change
    so a dashboard can redraw.
    """

    def __init__(
        self,
        timers: TimerService,
        capacity: int = WINDOW_CAPACITY,
        tracking_duration: float = TRACKING_DURATION,
        report_dir: str | Path = REPORT_DIR,
    ) -> None:
        self._timers = timers
        self.history = ChartHistory(capacity, clock=timers.now)
        self.disks = DiskUsageView()
        self.renderer = ReportRenderer(report_dir, history=self.history)
        self.tracking = TrackingSession(
            timers, on_complete=self._on_tracking_complete, duration=tracking_duration
        )
        self.description: SystemDescription | None = None
        self.latest: MetricsSnapshot | None = None
        self.last_update: float | None = None
        self.error: str | None = None
        self.connected = False
        self.disk_chart_stale = False
        self.last_report: TrackingReport | None = None
        self.last_report_path: Path | None = None
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def on_connect(self) -> None:
        self.connected = True
        self.error = None
        logger.info("Connected to server")
        self._notify()

    def on_system_info(self, payload: dict[str, Any]) -> None:
        try:
            self.description = SystemDescription.from_wire(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed systemInfo: %s", e)
            return
        self.renderer.description = self.description
        self._notify()

    def on_metrics(self, payload: dict[str, Any]) -> bool:
        """Apply one ``metrics`` event. Returns False if it was malformed."""
        try:
            snapshot = MetricsSnapshot.from_wire(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed metrics: %s", e)
            self.error = "Received malformed metrics"
            self._notify()
            return False

        self.history.push_snapshot(snapshot)
        if self.disks.update(snapshot.disk):
            self.disk_chart_stale = True
        self.latest = snapshot
        self.last_update = self._timers.now()
        self.error = None
        self.tracking.on_snapshot(snapshot)
        self._notify()
        return True

    def on_metrics_error(self, payload: dict[str, Any]) -> None:
        self.error = str(payload.get("message") or "Unknown error")
        logger.warning("Server reported a metrics error: %s", self.error)
        self._notify()

    def on_disconnect(self) -> None:
        """Mark the connection lost. An active tracking session is discarded."""
        self.connected = False
        self.tracking.cancel()
        logger.info("Disconnected from server")
        self._notify()

    def start_tracking(self) -> bool:
        started = self.tracking.start()
        if started:
            self._notify()
        return started

    def stop_tracking(self) -> TrackingReport | None:
        return self.tracking.stop()

    def _on_tracking_complete(self, report: TrackingReport) -> None:
        self.last_report = report
        try:
            self.last_report_path = self.renderer.render(report)
        except RenderError as e:
            logger.error("Error generating report: %s", e)
            self.last_report_path = None
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
