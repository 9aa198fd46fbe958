"""
Partogram Tracker
Cervical dilation time series with action-line breach detection
Author: IMPCG Companion Development Team
Version: 2.0.0

The earliest plotted observation defines hour 0 of the active phase. A
retrospectively entered earlier observation moves that origin back and
every existing point is re-timed against it. Breach is always re-derived
from the full series, never latched.
"""

import logging
from datetime import datetime, time
from typing import Callable, List, Optional, Union

from pydantic import ValidationError

from .audit_trail import AuditAction, AuditSink, NullAuditTrail
from .schemas import LaborDataPoint, PartogramState
from .storage import PARTOGRAM_KEY, KeyValueStore

logger = logging.getLogger(__name__)


ACTIVE_PHASE_CM = 4
ACTION_LINE_OFFSET_HOURS = 2
MAX_DILATION_CM = 10


def _local_now() -> datetime:
    return datetime.now().astimezone()


def alert_line_hours(dilation_cm: float) -> Optional[float]:
    """Hours from active-phase start at which the alert line reaches this dilation."""
    if dilation_cm < ACTIVE_PHASE_CM:
        return None
    return dilation_cm - ACTIVE_PHASE_CM


def action_line_hours(dilation_cm: float) -> Optional[float]:
    """Allowed hours for this dilation: 2h at 4cm, advancing 1h per cm."""
    if dilation_cm < ACTIVE_PHASE_CM:
        return None
    return (dilation_cm - ACTIVE_PHASE_CM) + ACTION_LINE_OFFSET_HOURS


def detect_breach(points: List[LaborDataPoint]) -> bool:
    # Latent phase points (< 4cm) never breach
    for p in points:
        allowed = action_line_hours(p.dilation_cm)
        if allowed is not None and p.hours_from_start > allowed:
            return True
    return False


def _hours_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


class PartogramTracker:
    """
    Persisted partogram for a single labour.

    Args:
        store: Key/value store holding the partogram namespace
        audit: Audit sink for plot events
        clock: Returns the current local time; its date anchors time-of-day entries
    """

    def __init__(self, store: KeyValueStore, audit: Optional[AuditSink] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.audit = audit or NullAuditTrail()
        self.clock = clock or _local_now
        self.state = PartogramState()
        self.breach_action_line = False

    @property
    def active_phase_start(self) -> Optional[datetime]:
        return self.state.active_phase_start

    @property
    def points(self) -> List[LaborDataPoint]:
        return list(self.state.points)

    def load(self) -> PartogramState:
        raw = self.store.get(PARTOGRAM_KEY)
        state = PartogramState()
        if raw:
            try:
                state = PartogramState.model_validate_json(raw)
            except ValidationError as e:
                logger.error(f"Corrupt partogram state, starting empty: {e}")
                state = PartogramState()

        self.state = self._localize_state(state)
        self.breach_action_line = detect_breach(self.state.points)
        logger.info(f"Partogram loaded: {len(self.state.points)} points, breach={self.breach_action_line}")
        return self.state

    def _now(self) -> datetime:
        now = self.clock()
        if now.tzinfo is None:
            now = now.astimezone()
        return now

    def _localize(self, value: datetime) -> datetime:
        # Naive instants are read as local to the clock
        if value.tzinfo is None:
            return value.replace(tzinfo=self._now().tzinfo)
        return value

    def _localize_state(self, state: PartogramState) -> PartogramState:
        if state.active_phase_start is None:
            return state
        return PartogramState(
            active_phase_start=self._localize(state.active_phase_start),
            points=[
                p.model_copy(update={'observed_at': self._localize(p.observed_at)})
                for p in state.points
            ],
        )

    def _resolve_instant(self, observed_at: Union[datetime, time, str]) -> datetime:
        if isinstance(observed_at, datetime):
            return self._localize(observed_at)

        if isinstance(observed_at, str):
            hours, minutes = (int(part) for part in observed_at.strip().split(':'))
            observed_at = time(hour=hours, minute=minutes)

        now = self._now()
        return datetime.combine(now.date(), observed_at, tzinfo=now.tzinfo)

    def add_observation(self, dilation_cm: float,
                        observed_at: Union[datetime, time, str]) -> LaborDataPoint:
        """
        Plot a dilation observation.

        Args:
            dilation_cm: Cervical dilation, 0-10 cm
            observed_at: Time of day ("HH:MM" or time) on the current date,
                or an absolute datetime

        Returns:
            The plotted point
        """
        if not 0 <= dilation_cm <= MAX_DILATION_CM:
            raise ValueError(f"dilation must be between 0 and {MAX_DILATION_CM} cm, got {dilation_cm}")

        instant = self._resolve_instant(observed_at)
        origin = self.state.active_phase_start
        points = list(self.state.points)

        if not points or origin is None or instant < origin:
            origin = instant
            points = [
                p.model_copy(update={'hours_from_start': _hours_between(p.observed_at, origin)})
                for p in points
            ]
            logger.info(f"Active phase origin set to {origin.isoformat()}")

        new_point = LaborDataPoint(
            dilation_cm=dilation_cm,
            observed_at=instant,
            hours_from_start=_hours_between(instant, origin),
        )
        points.append(new_point)
        points.sort(key=lambda p: p.hours_from_start)

        self.state = PartogramState(active_phase_start=origin, points=points)
        was_breached = self.breach_action_line
        self.breach_action_line = detect_breach(points)
        if self.breach_action_line and not was_breached:
            logger.warning("Partogram ACTION LINE CROSSED - consider transfer")

        self._persist()
        self.audit.record(
            AuditAction.CLINICAL_ACTION,
            f"Partogram Plot: {dilation_cm:g}cm at {new_point.hours_from_start:.2f}hrs"
        )
        return new_point

    def reset(self, confirmed: bool = False) -> bool:
        """Clear origin and all points. Destructive; only acts when confirmed."""
        if not confirmed:
            return False

        self.state = PartogramState()
        self.breach_action_line = False
        if not self.store.delete(PARTOGRAM_KEY):
            logger.error("Failed to delete persisted partogram state")
        logger.info("Partogram cleared")
        return True

    def _persist(self):
        if not self.store.set(PARTOGRAM_KEY, self.state.model_dump_json()):
            logger.error("Partogram state not persisted; keeping in-memory copy")
