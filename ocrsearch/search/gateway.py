"""Keyword search over extracted text.

A blank query lists the most recent records; anything else is a
case-insensitive literal substring match. Results are ordered by
recency only.
"""

from dataclasses import dataclass

from ocrsearch.storage.models import ImageRecord
from ocrsearch.storage.record_store import MAX_LIMIT, RecordStore
from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SearchHit:
    """A record returned by a search.

    ``matched`` is True when the record came from a text query and False
    when it came from the unconditional listing.
    """

    record: ImageRecord
    matched: bool


@dataclass
class SearchResult:
    """Hits for a query, newest first."""

    query: str | None
    hits: list[SearchHit]

    @property
    def count(self) -> int:
        return len(self.hits)


def normalize_query(query: str | None) -> str | None:
    """Return ``None`` for a blank query, otherwise the query unchanged.

    Surrounding whitespace is part of the substring being searched for.
    """
    if query is None or not query.strip():
        return None
    return query


class SearchGateway:
    """Translate free-text queries into record store lookups.

    Args:
        record_store: Store to query.
        max_results: Upper bound on returned hits (never above 100).
    """

    def __init__(self, record_store: RecordStore, max_results: int = MAX_LIMIT) -> None:
        self.record_store = record_store
        self.max_results = min(max_results, MAX_LIMIT)

    def search(
        self, query: str | None = None, limit: int | None = None
    ) -> SearchResult:
        """Return matching records, or the latest records for a blank query.

        Args:
            query: Free text to look for.
            limit: Optional smaller cap on the number of hits; values below
                one are treated as one.

        Returns:
            Search result annotated with how each hit was produced.
        """
        limit = self.max_results if limit is None else min(limit, self.max_results)
        limit = max(limit, 1)
        term = normalize_query(query)

        if term is None:
            records = self.record_store.find_all(limit)
            logger.debug("Listing %d most recent records", len(records))
            return SearchResult(
                query=None, hits=[SearchHit(r, matched=False) for r in records]
            )

        records = self.record_store.find_by_text_substring(term, limit)
        logger.info("Search %r matched %d records", term, len(records))
        hits = [SearchHit(r, matched=True) for r in records]
        return SearchResult(query=term, hits=hits)
