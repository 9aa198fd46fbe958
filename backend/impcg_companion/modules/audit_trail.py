"""
Audit Trail
Append-only, signed record of clinical actions taken on the device
Author: IMPCG Companion Development Team
Version: 2.0.0
"""

import hashlib
import hmac
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    VIEW_PROTOCOL = 'VIEW_PROTOCOL'
    CALCULATE_DOSE = 'CALCULATE_DOSE'
    GENERATE_REFERRAL = 'GENERATE_REFERRAL'
    CLINICAL_ACTION = 'CLINICAL_ACTION'
    RISK_ASSESSMENT = 'RISK_ASSESSMENT'
    TRIAGE_SAVED = 'TRIAGE_SAVED'


class AuditSink(Protocol):
    def record(self, action_type: AuditAction, details: str,
               subject_id: Optional[str] = None) -> None: ...


class AuditEntry(BaseModel):
    id: str
    timestamp: str
    user_id: str
    action_type: AuditAction
    details: str
    hash: str
    signature: str


class AuditTrail:
    """
    Writes audit entries as JSON lines.

    Each entry carries a SHA-256 content hash and an HMAC-SHA256 signature
    of that hash. Recording is fire-and-forget: a failed write is logged and
    never reaches the clinical workflow that triggered it.
    """

    def __init__(self, log_path, hmac_key: bytes, user_id: str):
        self.log_path = Path(log_path)
        self.hmac_key = hmac_key
        self.user_id = user_id
        logger.info(f"AuditTrail initialized at {self.log_path}")

    def compute_hash(self, entry_id: str, timestamp: str, user_id: str,
                     action_type: str, details: str) -> str:
        data_string = f"{entry_id}|{timestamp}|{user_id}|{action_type}|{details}"
        return hashlib.sha256(data_string.encode('utf-8')).hexdigest()

    def sign(self, digest: str) -> str:
        return hmac.new(self.hmac_key, digest.encode('utf-8'), hashlib.sha256).hexdigest()

    def record(self, action_type: AuditAction, details: str,
               subject_id: Optional[str] = None) -> Optional[AuditEntry]:
        action_type = AuditAction(action_type)
        entry_id = str(uuid.uuid4())
        timestamp = datetime.now(timezone.utc).isoformat()
        enriched = f"[PatientID: {subject_id}] {details}" if subject_id else details

        digest = self.compute_hash(entry_id, timestamp, self.user_id, action_type.value, enriched)
        entry = AuditEntry(
            id=entry_id,
            timestamp=timestamp,
            user_id=self.user_id,
            action_type=action_type,
            details=enriched,
            hash=digest,
            signature=self.sign(digest),
        )

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, 'a', encoding='utf-8') as f:
                f.write(entry.model_dump_json() + '\n')
        except OSError as e:
            logger.error(f"Failed to write audit log: {e}")
            return None

        logger.info(f"[AUDIT] {entry.timestamp} | {entry.action_type.value} | {entry.details}")
        return entry

    def read_entries(self) -> List[AuditEntry]:
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, 'r', encoding='utf-8') as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate_json(line))
                except ValueError as e:
                    logger.error(f"Unreadable audit entry at line {line_no}: {e}")
        return entries

    def verify_entry(self, entry: AuditEntry) -> bool:
        expected_hash = self.compute_hash(entry.id, entry.timestamp, entry.user_id,
                                          entry.action_type.value, entry.details)
        if not hmac.compare_digest(expected_hash, entry.hash):
            logger.warning(f"Audit entry {entry.id}: content hash mismatch")
            return False
        if not hmac.compare_digest(self.sign(entry.hash), entry.signature):
            logger.warning(f"Audit entry {entry.id}: signature mismatch")
            return False
        return True


class NullAuditTrail:
    """Discards every event. For callers that run the engine without a trail."""

    def record(self, action_type: AuditAction, details: str,
               subject_id: Optional[str] = None) -> None:
        return None

