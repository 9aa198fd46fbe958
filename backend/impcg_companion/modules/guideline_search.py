import logging
from typing import Iterable, List

from .schemas import GuidelineChunk

logger = logging.getLogger(__name__)


MIN_QUERY_LENGTH = 2


class GuidelineSearchIndex:
    """
    Case-insensitive substring lookup over static guideline chunks.

    A chunk matches when the query occurs in any tag, its title or its
    body. Title matches rank first; each group keeps dataset order.
    """

    def __init__(self, chunks: Iterable[GuidelineChunk]):
        self.chunks: List[GuidelineChunk] = list(chunks)
        logger.info(f"GuidelineSearchIndex initialized with {len(self.chunks)} chunks")

    def search(self, query: str) -> List[GuidelineChunk]:
        q = (query or '').strip().lower()
        if len(q) < MIN_QUERY_LENGTH:
            return []

        title_hits = []
        other_hits = []
        for chunk in self.chunks:
            if q in chunk.title.lower():
                title_hits.append(chunk)
            elif any(q in tag.lower() for tag in chunk.tags) or q in chunk.content.lower():
                other_hits.append(chunk)

        logger.debug(f"Search '{q}': {len(title_hits)} title, {len(other_hits)} other matches")
        return title_hits + other_hits
