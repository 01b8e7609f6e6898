"""Matching service facade.

Orchestrates retrieval and ranking for one anchor record, in either
direction, and for batches of anchors. Read-only: nothing here writes to a
store or touches status or view counters.
"""
from __future__ import annotations
import asyncio
import functools
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from libs.items.records import ItemKind, ItemRecord, MatchDirection
from libs.items.store import RecordStore
from libs.observability import get_logger, timer, counter, MatchingMetrics
from .config import MatchingConfig
from .errors import ConfigurationError, RetrievalError
from .ranker import MatchCandidate, MatchRanker
from .retriever import CandidateRetriever
from .scorer import SimilarityScorer

logger = get_logger(__name__)

# same sizing as the default asyncio executor
DEFAULT_BATCH_WORKERS = min(32, (os.cpu_count() or 1) + 4)


@dataclass
class MatchOutcome:
    """Matches for one item of a batch, or the reason there are none"""
    item: ItemRecord
    matches: List[MatchCandidate] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def matching_failed(self) -> bool:
        return self.error is not None


class MatchingService:
    """Finds probable lost/found matches for item reports"""

    def __init__(
        self,
        lost_store: RecordStore,
        found_store: RecordStore,
        config: Optional[MatchingConfig] = None,
        max_workers: Optional[int] = None,
    ):
        self.config = (config or MatchingConfig()).validate()
        if max_workers is not None and max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers or DEFAULT_BATCH_WORKERS
        if lost_store.kind is not ItemKind.LOST or found_store.kind is not ItemKind.FOUND:
            raise ValueError("MatchingService needs a lost store and a found store")
        self.lost_store = lost_store
        self.found_store = found_store
        self.scorer = SimilarityScorer(self.config)
        self.retriever = CandidateRetriever(self.config)
        self.ranker = MatchRanker(self.scorer)

    def _store_for(self, direction: MatchDirection) -> RecordStore:
        return self.lost_store if direction is MatchDirection.LOST_FOR_FOUND else self.found_store

    def match(
        self,
        anchor: ItemRecord,
        limit: Optional[int] = None,
        min_score: Optional[int] = None,
    ) -> List[MatchCandidate]:
        """Ranked matches for ``anchor`` from the opposite collection.

        Raises:
            RetrievalError: the candidate query failed.
        """
        direction = MatchDirection.for_anchor(anchor.kind)
        missing = anchor.missing_fields()
        if missing:
            logger.warning("Anchor cannot be scored, no matches", anchor_id=anchor.record_id, missing=missing)
            return []

        with timer(MatchingMetrics.FIND_MATCHES, tags={"direction": direction.value}):
            try:
                candidates = self.retriever.candidates(anchor, self._store_for(direction), direction)
                matches = self.ranker.rank(candidates, anchor, direction, limit=limit, min_score=min_score)
            except RetrievalError as e:
                counter(MatchingMetrics.RETRIEVAL_ERROR, tags={"direction": direction.value})
                logger.error("Candidate retrieval failed", anchor_id=anchor.record_id, error=str(e))
                raise

        counter(MatchingMetrics.MATCHES_FOUND, value=len(matches))
        logger.debug("Matching completed", anchor_id=anchor.record_id, direction=direction.value,
                     matches_found=len(matches),
                     top_score=matches[0].similarity_score if matches else 0)
        return matches

    def find_matches(self, found_item: ItemRecord, limit: Optional[int] = None,
                     min_score: Optional[int] = None) -> List[MatchCandidate]:
        """Lost items that probably describe ``found_item``"""
        if found_item.kind is not ItemKind.FOUND:
            raise ValueError("find_matches takes a found item")
        return self.match(found_item, limit, min_score)

    def find_matches_for_lost_item(self, lost_item: ItemRecord, limit: Optional[int] = None,
                                   min_score: Optional[int] = None) -> List[MatchCandidate]:
        """Found items that probably describe ``lost_item``"""
        if lost_item.kind is not ItemKind.LOST:
            raise ValueError("find_matches_for_lost_item takes a lost item")
        return self.match(lost_item, limit, min_score)

    def match_outcome(self, item: ItemRecord) -> MatchOutcome:
        """Like ``match`` but turns a retrieval failure into a degraded outcome"""
        try:
            return MatchOutcome(item=item, matches=self.match(item))
        except RetrievalError as e:
            return MatchOutcome(item=item, error=str(e))

    async def find_matches_async(self, item: ItemRecord, timeout: Optional[float] = None) -> List[MatchCandidate]:
        """Run ``match`` in a worker thread, bounded by ``timeout`` seconds.

        Raises:
            RetrievalError: the query failed or did not finish in time.
        """
        return await self._match_in_worker(item, timeout)

    async def _match_in_worker(
        self,
        item: ItemRecord,
        timeout: Optional[float],
        executor: Optional[ThreadPoolExecutor] = None,
        slots: Optional[asyncio.Semaphore] = None,
    ) -> List[MatchCandidate]:
        # the clock starts once a worker is free, not while queued for one
        if slots is not None:
            await slots.acquire()
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(executor, self.match, item)
        future.add_done_callback(functools.partial(_release_worker, slots))
        try:
            # shielded: a timed-out worker keeps its slot until the thread really ends
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError as e:
            counter(MatchingMetrics.RETRIEVAL_TIMEOUT)
            logger.warning("Matching timed out", anchor_id=item.record_id, timeout=timeout)
            raise RetrievalError(item.record_id, f"timed out after {timeout}s", cause=e) from e

    async def find_matches_for_items(
        self,
        items: Iterable[ItemRecord],
        timeout: Optional[float] = None,
    ) -> List[MatchOutcome]:
        """Match every item concurrently, one outcome per item in input order.

        At most ``max_workers`` retrievals run at once and each item's
        ``timeout`` only covers its own retrieval. A failure or timeout for
        one item only degrades that item's outcome.
        """
        items = list(items)
        if not items:
            return []
        workers = min(self.max_workers, len(items))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="findback-match")
        slots = asyncio.Semaphore(workers)

        async def _one(item: ItemRecord) -> MatchOutcome:
            try:
                matches = await self._match_in_worker(item, timeout, executor, slots)
            except RetrievalError as e:
                return MatchOutcome(item=item, error=str(e))
            return MatchOutcome(item=item, matches=matches)

        try:
            with timer(MatchingMetrics.FIND_MATCHES_BATCH):
                outcomes = await asyncio.gather(*[_one(item) for item in items])
        finally:
            # timed-out workers may still be running
            executor.shutdown(wait=False)

        failed = sum(1 for o in outcomes if o.matching_failed)
        logger.info("Batch matching completed", items=len(items), failed=failed, workers=workers)
        return list(outcomes)


def _release_worker(slots: Optional[asyncio.Semaphore], future: asyncio.Future) -> None:
    if slots is not None:
        slots.release()
    if not future.cancelled():
        # retrieve so an abandoned worker's error is not reported as unhandled
        future.exception()


def create_matching_service(
    lost_store: RecordStore,
    found_store: RecordStore,
    config: Optional[MatchingConfig] = None,
    max_workers: Optional[int] = None,
) -> MatchingService:
    """Factory function to create the matching service"""
    return MatchingService(lost_store, found_store, config, max_workers=max_workers)
