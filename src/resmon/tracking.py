"""Bounded-duration tracking sessions.

A session captures every snapshot it is offered for a fixed duration, then
reduces the capture to ``Statistics`` and hands a ``TrackingReport`` to its
completion callback.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from resmon.config import TRACKING_DURATION
from resmon.logger import get_logger
from resmon.models import MetricsSnapshot, TrackingRecord
from resmon.stats import Statistics, reduce_records
from resmon.timers import TimerHandle, TimerService

logger = get_logger(__name__)

COUNTDOWN_RESOLUTION = 1.0  # seconds


class SessionState(Enum):
    """Externally observable session states."""

    IDLE = "idle"
    ACTIVE = "active"


@dataclass(slots=True, frozen=True)
class TrackingReport:
    """Result of a finished session."""

    started_at: float
    finished_at: float
    statistics: Statistics
    latest: TrackingRecord | None
    sample_count: int

    @property
    def duration(self) -> float:
        return self.finished_at - self.started_at

    def to_wire(self) -> dict[str, Any]:
        latest = self.latest
        return {
            "startTime": self.started_at,
            "endTime": self.finished_at,
            "samples": self.sample_count,
            "statistics": self.statistics.to_wire(),
            "disk": [d.to_wire() for d in latest.disk] if latest else [],
            "processes": [p.to_wire() for p in latest.processes] if latest else [],
            "gpu": [g.to_wire() for g in latest.gpu] if latest else [],
        }


class TrackingSession:
    """
    Idle/Active state machine for one viewer's tracking request.

    Not thread-safe; every method runs on the owning event loop.
    """

    def __init__(
        self,
        timers: TimerService,
        on_complete: Callable[[TrackingReport], None] | None = None,
        duration: float = TRACKING_DURATION,
    ) -> None:
        self._timers = timers
        self._on_complete = on_complete
        self._duration = duration
        self._state = SessionState.IDLE
        self._started_at: float | None = None
        self._records: list[TrackingRecord] = []
        self._countdown: TimerHandle | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def started_at(self) -> float | None:
        return self._started_at

    @property
    def records(self) -> tuple[TrackingRecord, ...]:
        return tuple(self._records)

    @property
    def remaining(self) -> float:
        """Seconds left before the session completes; 0 when idle."""
        if not self.is_active or self._started_at is None:
            return 0.0
        return max(0.0, self._duration - (self._timers.now() - self._started_at))

    def start(self) -> bool:
        """
        Begin capturing.

        Returns:
            False if a session is already active (the call is a no-op).
        """
        if self.is_active:
            return False
        self._state = SessionState.ACTIVE
        self._started_at = self._timers.now()
        self._records = []
        self._countdown = self._timers.call_every(
            COUNTDOWN_RESOLUTION, self._check_elapsed, name="tracking-countdown"
        )
        logger.info("Started %.0f-second tracking session", self._duration)
        return True

    def on_snapshot(self, snapshot: MetricsSnapshot) -> bool:
        """Capture ``snapshot``. Ignored (returns False) while idle."""
        if not self.is_active:
            return False
        self._records.append(TrackingRecord.from_snapshot(snapshot))
        return True

    def stop(self) -> TrackingReport | None:
        """
        Finish early or on time: reduce, reset to idle, then report.

        Returns:
            The report, or None if no session was active.
        """
        if not self.is_active:
            return None

        records = self._records
        report = TrackingReport(
            started_at=self._started_at if self._started_at is not None else self._timers.now(),
            finished_at=self._timers.now(),
            statistics=reduce_records(records),
            latest=records[-1] if records else None,
            sample_count=len(records),
        )
        self._reset()
        logger.info("Tracking complete. Collected %d data points.", report.sample_count)

        if self._on_complete is not None:
            self._on_complete(report)
        return report

    def cancel(self) -> None:
        """Drop the capture without reporting, e.g. when the viewer disconnects."""
        if self.is_active:
            logger.info("Tracking session cancelled after %d data points", len(self._records))
        self._reset()

    def _check_elapsed(self) -> None:
        if self.is_active and self.remaining <= 0:
            self.stop()

    def _reset(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None
        self._state = SessionState.IDLE
        self._started_at = None
        self._records = []
