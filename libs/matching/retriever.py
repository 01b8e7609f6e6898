"""Coarse candidate retrieval ahead of scoring.

The filter favours recall: a candidate qualifies by sharing the anchor's
category, or by being unresolved with a date inside a window slightly wider
than the scoring window. Precision comes from the scorer and the ranker's
threshold.
"""
from __future__ import annotations
from datetime import timedelta
from typing import Iterator, Optional

from libs.db.models import ItemStatus
from libs.items.records import ItemRecord, MatchDirection
from libs.items.store import RecordFilter, RecordStore
from libs.observability import get_logger
from .config import MatchingConfig
from .errors import RetrievalError

logger = get_logger(__name__)


class CandidateRetriever:

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    def build_filter(self, anchor: ItemRecord, direction: MatchDirection) -> RecordFilter:
        """Store filter for the candidates of ``anchor``"""
        by_category = RecordFilter(category=anchor.category.strip())
        if anchor.date is None:
            return by_category

        wide = timedelta(days=self.config.retrieval_window_days)
        grace = timedelta(days=self.config.date_grace_days)
        if direction is MatchDirection.LOST_FOR_FOUND:
            # lost before the find, up to the window back
            date_from, date_to = anchor.date - wide, anchor.date + grace
        else:
            date_from, date_to = anchor.date - grace, anchor.date + wide

        recent_open = RecordFilter(
            exclude_status=ItemStatus.RESOLVED.value,
            date_from=date_from,
            date_to=date_to,
        )
        return RecordFilter.either(by_category, recent_open)

    def candidates(
        self,
        anchor: ItemRecord,
        store: RecordStore,
        direction: Optional[MatchDirection] = None,
    ) -> Iterator[ItemRecord]:
        """Lazily yield candidate records for ``anchor`` from ``store``.

        Single pass over the store's result. Any store failure surfaces as
        RetrievalError.
        """
        direction = direction or MatchDirection.for_anchor(anchor.kind)
        if anchor.kind is not direction.anchor_kind:
            raise ValueError(f"A {anchor.kind.value} record cannot anchor {direction.value} matching")
        if store.kind is not direction.candidate_kind:
            raise ValueError(f"{direction.value} matching needs a {direction.candidate_kind.value} store")

        record_filter = self.build_filter(anchor, direction)
        logger.debug("Retrieving candidates", anchor_id=anchor.record_id, direction=direction.value)
        try:
            for record in store.find(record_filter):
                if record.kind is not direction.candidate_kind:
                    continue
                yield record
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(anchor.record_id, str(e) or type(e).__name__, cause=e) from e
