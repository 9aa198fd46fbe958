"""
Local key/value persistence for clinical state.

The engine only needs get/set/delete. ``JsonFileStore`` keeps one JSON
document per key on disk; ``MemoryStore`` keeps them in a dict. Neither
raises on I/O failure: reads fall back to ``None`` and writes report
``False`` so callers can carry on with in-memory state.
"""

import os
import re
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

PATIENTS_KEY = 'patient_records'
PPH_KEY = 'pph_session'
PARTOGRAM_KEY = 'partogram_state'


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> bool: ...

    def delete(self, key: str) -> bool: ...


class MemoryStore:
    """Dict-backed store, used for ephemeral sessions and tests."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore:
    def __init__(self, directory):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFileStore ready at {self.directory.absolute()}")

    def _path(self, key: str) -> Path:
        return self.directory / f"{_sanitize_key(key)}.json"

    def get(self, key: str) -> Optional[str]:
        filepath = self._path(key)
        if not filepath.exists():
            return None
        try:
            return filepath.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read key '{key}': {e}")
            return None

    def set(self, key: str, value: str) -> bool:
        filepath = self._path(key)
        tmp_path = filepath.with_suffix('.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, filepath)
            return True
        except OSError as e:
            logger.error(f"Failed to write key '{key}': {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.error(f"Failed to delete key '{key}': {e}")
            return False


def _sanitize_key(key: str) -> str:
    return re.sub(r'[^A-Za-z0-9_\-]', '_', key)
