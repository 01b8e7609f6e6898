"""Scoring and ranking of retrieved candidates"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from libs.items.records import ItemRecord, MatchDirection
from libs.observability import get_logger, counter, MatchingMetrics
from .errors import ValidationError
from .scorer import ScoreBreakdown, SimilarityScorer

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchCandidate:
    """One scored (anchor, candidate) pair. Never persisted."""
    anchor: ItemRecord
    candidate: ItemRecord
    direction: MatchDirection
    similarity_score: int
    breakdown: ScoreBreakdown

    @property
    def lost(self) -> ItemRecord:
        return self.candidate if self.direction is MatchDirection.LOST_FOR_FOUND else self.anchor

    @property
    def found(self) -> ItemRecord:
        return self.anchor if self.direction is MatchDirection.LOST_FOR_FOUND else self.candidate

    def to_payload(self) -> Dict[str, Any]:
        key = "lostItem" if self.direction is MatchDirection.LOST_FOR_FOUND else "foundItem"
        return {
            "similarityScore": self.similarity_score,
            key: self.candidate.summary(),
            "scoreBreakdown": self.breakdown.to_dict(),
        }


def _ordering_key(match: MatchCandidate):
    # score desc, then freshest candidate date, then id asc
    candidate_date = match.candidate.date or date.min
    return (-match.similarity_score, -candidate_date.toordinal(), match.candidate.record_id)


class MatchRanker:

    def __init__(self, scorer: SimilarityScorer):
        self.scorer = scorer

    def score_pair(self, anchor: ItemRecord, candidate: ItemRecord, direction: MatchDirection) -> MatchCandidate:
        if direction is MatchDirection.LOST_FOR_FOUND:
            lost, found = candidate, anchor
        else:
            lost, found = anchor, candidate
        result = self.scorer.score(lost, found)
        return MatchCandidate(
            anchor=anchor,
            candidate=candidate,
            direction=direction,
            similarity_score=result.total,
            breakdown=result.breakdown,
        )

    def rank(
        self,
        candidates: Iterable[ItemRecord],
        anchor: ItemRecord,
        direction: Optional[MatchDirection] = None,
        limit: Optional[int] = None,
        min_score: Optional[int] = None,
    ) -> List[MatchCandidate]:
        """Score, threshold, order and truncate candidates for ``anchor``.

        Pairs that fail validation are skipped; the rest are still ranked.
        Returns at most ``limit`` matches, none below ``min_score``.
        """
        direction = direction or MatchDirection.for_anchor(anchor.kind)
        limit = self.scorer.config.result_limit if limit is None else limit
        min_score = self.scorer.config.min_score if min_score is None else min_score

        scored: List[MatchCandidate] = []
        considered = 0
        skipped = 0
        for candidate in candidates:
            considered += 1
            try:
                match = self.score_pair(anchor, candidate, direction)
            except ValidationError as e:
                skipped += 1
                logger.warning("Skipping unscorable pair", anchor_id=anchor.record_id,
                               candidate_id=candidate.record_id, error=str(e))
                continue
            if match.similarity_score >= min_score:
                scored.append(match)

        counter(MatchingMetrics.CANDIDATES_SCORED, value=considered - skipped)
        if skipped:
            counter(MatchingMetrics.SKIPPED_PAIRS, value=skipped)

        ranked = sorted(scored, key=_ordering_key)
        return ranked[:max(limit, 0)]
