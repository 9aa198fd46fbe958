"""
PPH Emergency Session Engine
Resumable wall-clock timer for the postpartum haemorrhage protocol
Author: IMPCG Companion Development Team
Version: 2.0.0

Lifecycle:
  initialize()  -> runs the resume-on-load protocol exactly once
  resume() / discard() -> resolve a pending resume candidate
  start() / tick() / toggle_action() / end() -> session mutations

No mutation is accepted until initialize() has run and any resume
candidate has been resolved. Every mutation of an active session is
written through to the store immediately; a cleared session deletes the
persisted copy, so "no record" always means "no active session".
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol

from pydantic import ValidationError

from .audit_trail import AuditAction, AuditSink, NullAuditTrail
from .schemas import PPHSession
from .storage import PPH_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class SessionStateError(RuntimeError):
    """Raised when an operation does not fit the current session state."""


class ResumeDecisionPending(SessionStateError):
    """Raised when a mutation is attempted before the resume gate is resolved."""


class ResumeState(str, Enum):
    UNINITIALIZED = 'UNINITIALIZED'
    FRESH = 'FRESH'
    RESUME_CANDIDATE = 'RESUME_CANDIDATE'
    STALE_DISCARDED = 'STALE_DISCARDED'


@dataclass(frozen=True)
class ProtocolStep:
    tag: str
    label: str
    time_offset_min: Optional[int] = None


# E-MOTIVE first response, in the order the checklist is worked
PPH_PROTOCOL: List[ProtocolStep] = [
    ProtocolStep('Massage', 'Call for Help & Massage Uterus', 0),
    ProtocolStep('IV', 'Insert 2x Large Bore IVs (16G)', 2),
    ProtocolStep('Oxytocin', 'Oxytocin 10-20 units IV/IM', 5),
    ProtocolStep('EmptyBladder', 'Empty Bladder (Catheter)', 8),
    ProtocolStep('TXA', 'Tranexamic Acid 1g IV', 10),
    ProtocolStep('TransferDecision', 'Check Clotting / Transfer Decision', 15),
    ProtocolStep('Ergo', 'Carbetocin / Ergometrine'),
]


def format_elapsed(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TickScheduler(Protocol):
    def start(self, callback: Callable[[], object]) -> None: ...

    def cancel(self) -> None: ...


class AsyncioTickScheduler:
    """
    Runs a callback on a fixed cadence as an asyncio task.

    Must be started from inside a running event loop. Callback errors are
    logged and the cadence continues.
    """

    def __init__(self, interval_sec: float = 1.0):
        self.interval_sec = interval_sec
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: Callable[[], object]) -> None:
        if self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(callback))

    async def _run(self, callback: Callable[[], object]):
        while True:
            await asyncio.sleep(self.interval_sec)
            try:
                callback()
            except Exception as e:
                logger.error(f"Tick callback failed: {e}", exc_info=True)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class EmergencySessionEngine:
    """
    Persisted PPH session with one-way refractory escalation.

    Args:
        store: Key/value store holding the PPH namespace
        audit: Audit sink for clinical actions
        clock: Returns the current aware datetime
        scheduler: Optional cooperative ticker; started only for an active,
            resolved session and cancelled when the session ends
    """

    REFRACTORY_AFTER_SECONDS = 900  # 15 minutes
    MAX_SESSION_AGE = timedelta(hours=12)

    def __init__(self, store: KeyValueStore, audit: Optional[AuditSink] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 scheduler: Optional[TickScheduler] = None):
        self.store = store
        self.audit = audit or NullAuditTrail()
        self.clock = clock or _utc_now
        self.scheduler = scheduler

        self.session = PPHSession()
        self.elapsed_seconds = 0
        self.pending_session: Optional[PPHSession] = None
        self.resume_state = ResumeState.UNINITIALIZED
        self.is_initialized = False

    # ── Resume-on-load ────────────────────────────────────────────────────────

    def _read_persisted(self) -> Optional[PPHSession]:
        raw = self.store.get(PPH_KEY)
        if not raw:
            return None
        try:
            return PPHSession.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Corrupt PPH session in storage, treating as absent: {e}")
            return None

    def initialize(self) -> ResumeState:
        """Run the resume protocol. Safe to call again; later calls are no-ops."""
        if self.resume_state != ResumeState.UNINITIALIZED:
            return self.resume_state

        saved = self._read_persisted()
        if saved is None or not saved.is_active:
            self.resume_state = ResumeState.FRESH
            self.is_initialized = True
            logger.info("No active PPH session in storage")
            return self.resume_state

        age = self.clock() - _as_aware(saved.start_time)
        if age >= self.MAX_SESSION_AGE:
            if not self.store.delete(PPH_KEY):
                logger.error("Failed to delete stale PPH session")
            self.audit.record(AuditAction.CLINICAL_ACTION,
                              'Stale PPH Session (>12h) detected and cleared.')
            logger.warning(f"Stale PPH session discarded (age {age})")
            self.resume_state = ResumeState.STALE_DISCARDED
            self.is_initialized = True
            return self.resume_state

        self.pending_session = saved
        self.resume_state = ResumeState.RESUME_CANDIDATE
        logger.info(f"PPH session resume candidate found (age {age})")
        return self.resume_state

    def pending_minutes_ago(self) -> Optional[int]:
        if self.pending_session is None:
            return None
        age = self.clock() - _as_aware(self.pending_session.start_time)
        return int(age.total_seconds() // 60)

    def resume(self) -> PPHSession:
        if self.pending_session is None:
            raise SessionStateError("No PPH session is waiting to be resumed")

        self.session = self.pending_session
        self.pending_session = None
        self.is_initialized = True
        self.elapsed_seconds = self._compute_elapsed()

        self.audit.record(
            AuditAction.CLINICAL_ACTION,
            f"PPH Timer RESUMED from storage by user. Elapsed: {self.elapsed_seconds}s"
        )
        logger.info(f"PPH session resumed at {format_elapsed(self.elapsed_seconds)}")
        self._start_ticking()
        return self.session

    def discard(self) -> None:
        if self.pending_session is None:
            raise SessionStateError("No PPH session is waiting to be discarded")

        self.pending_session = None
        self.session = PPHSession()
        self.elapsed_seconds = 0
        if not self.store.delete(PPH_KEY):
            logger.error("Failed to delete discarded PPH session")
        self.is_initialized = True
        self._stop_ticking()
        self.audit.record(AuditAction.CLINICAL_ACTION, 'User DISCARDED previous PPH session.')

    # ── Session mutations ─────────────────────────────────────────────────────

    def _require_ready(self):
        if not self.is_initialized:
            raise ResumeDecisionPending(
                "PPH session state not resolved; run initialize() and resume or discard first"
            )

    def start(self) -> PPHSession:
        self._require_ready()
        if self.session.is_active:
            raise SessionStateError("A PPH session is already running")

        self.audit.record(AuditAction.CLINICAL_ACTION, 'PPH Emergency Protocol STARTED')
        self.session = PPHSession(
            is_active=True,
            start_time=self.clock(),
            actions_taken=set(),
            is_refractory=False,
        )
        self.elapsed_seconds = 0
        self._persist()
        logger.info("PPH session started")
        self._start_ticking()
        return self.session

    def _compute_elapsed(self) -> int:
        if self.session.start_time is None:
            return 0
        delta = self.clock() - _as_aware(self.session.start_time)
        return max(0, math.floor(delta.total_seconds()))

    def tick(self) -> int:
        """Recompute elapsed time and latch the refractory flag past 15 minutes."""
        if not self.is_initialized or not self.session.is_active:
            return self.elapsed_seconds

        self.elapsed_seconds = self._compute_elapsed()

        if self.elapsed_seconds > self.REFRACTORY_AFTER_SECONDS and not self.session.is_refractory:
            self.session = self.session.model_copy(update={'is_refractory': True})
            self._persist()
            self.audit.record(
                AuditAction.CLINICAL_ACTION,
                'PPH designated as REFRACTORY (Time > 15mins). Escalation required.'
            )
            logger.warning(f"PPH REFRACTORY at {format_elapsed(self.elapsed_seconds)} - prepare transfer")

        return self.elapsed_seconds

    def toggle_action(self, tag: str) -> bool:
        """
        Add or remove an action tag.

        Returns:
            True if the action is now recorded as done, False if it was removed
        """
        self._require_ready()
        if not self.session.is_active:
            raise SessionStateError("No active PPH session to record actions against")

        actions = set(self.session.actions_taken)
        was_checked = tag in actions
        if was_checked:
            actions.discard(tag)
        else:
            actions.add(tag)

        self.session = self.session.model_copy(update={'actions_taken': actions})
        self._persist()

        # Only the add transition is audited
        if not was_checked:
            self.audit.record(AuditAction.CLINICAL_ACTION, f"Action Completed: {tag} administered/done.")
        return not was_checked

    def end(self, confirmed: bool = False) -> bool:
        """End the session. Irreversible; only acts when confirmed."""
        self._require_ready()
        if not confirmed:
            return False
        if not self.session.is_active:
            raise SessionStateError("No active PPH session to end")

        elapsed = self._compute_elapsed()
        meds = ', '.join(sorted(self.session.actions_taken))
        self.audit.record(
            AuditAction.CLINICAL_ACTION,
            f"PPH Protocol ENDED. Duration: {elapsed}s. Meds given: {meds}"
        )

        self.session = PPHSession()
        self.elapsed_seconds = 0
        self._stop_ticking()
        self._persist()
        logger.info(f"PPH session ended after {format_elapsed(elapsed)}")
        return True

    # ── Views ─────────────────────────────────────────────────────────────────

    def checklist(self) -> List[Dict]:
        elapsed_min = self.elapsed_seconds / 60
        return [
            {
                'tag': step.tag,
                'label': step.label,
                'time_offset_min': step.time_offset_min,
                'completed': step.tag in self.session.actions_taken,
                'due': (
                    self.session.is_active
                    and step.time_offset_min is not None
                    and elapsed_min >= step.time_offset_min
                ),
            }
            for step in PPH_PROTOCOL
        ]

    # ── Persistence and scheduling ────────────────────────────────────────────

    def _persist(self):
        if self.session.is_active:
            ok = self.store.set(PPH_KEY, self.session.model_dump_json())
        elif self.session.is_cleared():
            ok = self.store.delete(PPH_KEY)
        else:
            return
        if not ok:
            logger.error("PPH session write-through failed; in-memory state kept")

    def _start_ticking(self):
        if self.scheduler is not None and self.session.is_active:
            self.scheduler.start(self.tick)

    def _stop_ticking(self):
        if self.scheduler is not None:
            self.scheduler.cancel()
