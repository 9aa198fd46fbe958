"""
Runtime configuration for the IMPCG companion engine.

Values come from the environment (optionally a .env file). Nothing here
raises at import time: missing values log a warning and fall back to a
development default so the engine can always start offline.
"""

import os
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Storage ───────────────────────────────────────────────────────────────────
DATA_DIR = Path(os.getenv('IMPCG_DATA_DIR', 'data/impcg_store'))
AUDIT_LOG_PATH = Path(os.getenv('IMPCG_AUDIT_LOG', 'data/audit/audit_trail.jsonl'))

# ── Audit signing ─────────────────────────────────────────────────────────────
AUDIT_HMAC_KEY_STR = os.getenv('AUDIT_HMAC_KEY', '')
if not AUDIT_HMAC_KEY_STR:
    logger.warning(
        "AUDIT_HMAC_KEY not set in environment. "
        "Audit entries will be signed with a placeholder key. "
        "Set this variable in .env before production use."
    )
    AUDIT_HMAC_KEY_STR = 'placeholder-dev-key-not-for-production'
AUDIT_HMAC_KEY = AUDIT_HMAC_KEY_STR.encode()

# In a deployed build this comes from the authenticated device session
DEVICE_USER_ID = os.getenv('IMPCG_DEVICE_USER_ID', 'midwife_device_001')

# ── HTTP surface ──────────────────────────────────────────────────────────────
HOST = os.getenv('HOST', '127.0.0.1')
PORT = int(os.getenv('PORT', '8001'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
