"""
Reference Library
Read-only guideline chunks and PPH drug/protocol entries
Author: IMPCG Companion Development Team
Version: 2.0.0
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from .guideline_search import GuidelineSearchIndex
from .schemas import GuidelineChunk, ProtocolItem

logger = logging.getLogger(__name__)


DRUG_CATEGORY = 'Emergency Drug'
PROTOCOL_CATEGORIES = ('Protocol', 'Procedure')


def _default_data_dir() -> Path:
    return Path(__file__).parent.parent / 'data'


class ReferenceLibrary:
    """
    Loads the static content set once and serves filtered views of it.

    Args:
        data_dir: Directory holding guideline_content.json and
            pph_protocols.json. Defaults to the packaged data.
    """

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir) if data_dir else _default_data_dir()
        self.guidelines: List[GuidelineChunk] = []
        self.items: List[ProtocolItem] = []

        self._load()
        self.index = GuidelineSearchIndex(self.guidelines)

        logger.info(
            f"ReferenceLibrary initialized with {len(self.guidelines)} guideline chunks "
            f"and {len(self.items)} protocol items"
        )

    def _read_json(self, filename: str) -> dict:
        path = self.data_dir / filename
        if not path.exists():
            logger.error(f"Reference data not found: {path}")
            raise FileNotFoundError(f"Reference data missing: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info(f"Loaded {filename} v{data.get('version', 'unknown')}")
        return data

    def _load(self):
        guideline_data = self._read_json('guideline_content.json')
        self.guidelines = [GuidelineChunk(**c) for c in guideline_data['chunks']]

        protocol_data = self._read_json('pph_protocols.json')
        self.items = [ProtocolItem(**i) for i in protocol_data['items']]

    def search(self, query: str) -> List[GuidelineChunk]:
        return self.index.search(query)

    def _filter(self, categories, term: str) -> List[ProtocolItem]:
        needle = (term or '').lower()
        return [
            item for item in self.items
            if item.category in categories and needle in item.title.lower()
        ]

    def emergency_drugs(self, term: str = '') -> List[ProtocolItem]:
        return self._filter((DRUG_CATEGORY,), term)

    def protocols(self, term: str = '') -> List[ProtocolItem]:
        return self._filter(PROTOCOL_CATEGORIES, term)

    def get_item(self, item_id: str) -> Optional[ProtocolItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None
