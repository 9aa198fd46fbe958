"""
Audit Trail Integrity Verification Utility
Verifies SHA-256 content hashes and HMAC signatures of audit entries
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from impcg_companion.modules.audit_trail import AuditTrail

load_dotenv()


def verify_audit_log(log_path: str, hmac_key: bytes) -> bool:
    """Verify every entry of an audit log. Returns True if all pass."""
    path = Path(log_path)
    if not path.exists():
        print(f"✗ Audit log not found: {path}")
        return False

    print(f"Verifying audit log: {path}\n")

    trail = AuditTrail(path, hmac_key=hmac_key, user_id='verifier')
    entries = trail.read_entries()
    if not entries:
        print("⚠ Audit log contains no readable entries")
        return False

    all_passed = True
    for entry in entries:
        if trail.verify_entry(entry):
            print(f"✓ {entry.timestamp} {entry.action_type.value} {entry.id}")
        else:
            print(f"✗ {entry.timestamp} {entry.action_type.value} {entry.id} - entry may have been tampered")
            all_passed = False

    print()
    print(f"{len(entries)} entries checked: {'ALL VALID' if all_passed else 'INTEGRITY FAILURES FOUND'}")
    return all_passed


if __name__ == "__main__":
    key = os.getenv('AUDIT_HMAC_KEY')
    if not key:
        print("ERROR: AUDIT_HMAC_KEY not set in environment")
        sys.exit(1)

    log_path = sys.argv[1] if len(sys.argv) > 1 else os.getenv('IMPCG_AUDIT_LOG', 'data/audit/audit_trail.jsonl')
    sys.exit(0 if verify_audit_log(log_path, key.encode()) else 1)
