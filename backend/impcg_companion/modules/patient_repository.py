import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError

from .audit_trail import AuditAction, AuditSink, NullAuditTrail
from .schemas import PatientRecord, TriageColor, VitalsSnapshot
from .storage import PATIENTS_KEY, KeyValueStore
from .triage_classifier import classify

logger = logging.getLogger(__name__)

_RECORDS_ADAPTER = TypeAdapter(List[PatientRecord])


@dataclass(frozen=True)
class PatientStats:
    high_risk: int  # RED + YELLOW
    low_risk: int   # GREEN
    total: int


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _new_id() -> str:
    return str(uuid.uuid4())


def serialize_records(records: List[PatientRecord]) -> str:
    return _RECORDS_ADAPTER.dump_json(records).decode('utf-8')


def deserialize_records(raw: str) -> List[PatientRecord]:
    return _RECORDS_ADAPTER.validate_json(raw)


class PatientRepository:
    """
    Newest-first collection of saved triage encounters.

    Records are immutable once saved. Unreadable storage yields an empty
    list rather than an error.
    """

    def __init__(self, store: KeyValueStore, audit: Optional[AuditSink] = None,
                 clock: Optional[Callable[[], datetime]] = None,
                 id_factory: Optional[Callable[[], str]] = None):
        self.store = store
        self.audit = audit or NullAuditTrail()
        self.clock = clock or _local_now
        self.id_factory = id_factory or _new_id

    def all_records(self) -> List[PatientRecord]:
        raw = self.store.get(PATIENTS_KEY)
        if not raw:
            return []
        try:
            return deserialize_records(raw)
        except ValidationError as e:
            logger.error(f"Corrupt patient records in storage: {e}")
            return []

    def get_record(self, record_id: str) -> Optional[PatientRecord]:
        for record in self.all_records():
            if record.id == record_id:
                return record
        return None

    def save_record(self, record: PatientRecord) -> bool:
        updated = [record] + self.all_records()
        ok = self.store.set(PATIENTS_KEY, serialize_records(updated))
        if not ok:
            logger.error(f"Storage write failed for record {record.id}")
        return ok

    def save_encounter(self, vitals: VitalsSnapshot, notes: str = '',
                       gestational_age_weeks: Optional[float] = None) -> Optional[PatientRecord]:
        """
        Save a triage encounter on explicit user request.

        Returns:
            The saved record, or None when the vitals have no classification
        """
        color = classify(vitals)
        if color is None:
            logger.info("Encounter not saved: vitals have no triage classification")
            return None

        record = PatientRecord(
            id=self.id_factory(),
            timestamp=self.clock(),
            vitals=vitals,
            triage_result=color,
            notes=(notes or '').strip(),
            synced=False,
            gestational_age_weeks=gestational_age_weeks,
        )
        self.save_record(record)

        if color == TriageColor.RED:
            logger.warning(f"RED encounter saved: {record.id}")

        sys_bp = '' if vitals.systolic_bp is None else f"{vitals.systolic_bp:g}"
        dia_bp = '' if vitals.diastolic_bp is None else f"{vitals.diastolic_bp:g}"
        ga = 'N/A' if gestational_age_weeks is None else f"{gestational_age_weeks:g}"
        self.audit.record(
            AuditAction.TRIAGE_SAVED,
            f"Saved {color.value} encounter. BP:{sys_bp}/{dia_bp}, GA:{ga}",
            record.id,
        )
        return record

    def stats(self) -> PatientStats:
        records = self.all_records()
        high_risk = sum(1 for r in records if r.triage_result in (TriageColor.RED, TriageColor.YELLOW))
        return PatientStats(high_risk=high_risk, low_risk=len(records) - high_risk, total=len(records))
