"""Pairwise similarity between one lost and one found report.

The total is a weighted sum of four sub-scores, each on a 0-100 scale:

- category: exact (case-insensitive) category match, all or nothing
- text: item name plus description, token overlap blended with edit distance
- location: same technique over the free-text locations
- date: proximity of the found date to the lost date within a window

A category mismatch only costs the category weight; mis-tagged reports are
common enough that it must not exclude the pair outright.
"""
from __future__ import annotations
import math
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from libs.items.records import ItemKind, ItemRecord
from .config import MatchingConfig
from .errors import ValidationError
from .text import text_similarity


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores, each 0-100 before weighting"""
    category: float
    text: float
    location: float
    date: float

    def to_dict(self) -> Dict[str, int]:
        return {k: round_half_up(v) for k, v in asdict(self).items()}


@dataclass(frozen=True)
class ScoreResult:
    total: int
    breakdown: ScoreBreakdown


def round_half_up(value: float) -> int:
    # six decimals first so 94.4999999 from float sums rounds like 94.5 would
    return int(math.floor(round(value, 6) + 0.5))


class SimilarityScorer:
    """Scores a (lost, found) pair. Pure function of the pair and the config."""

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()

    def score(self, lost: ItemRecord, found: ItemRecord) -> ScoreResult:
        """Score ``lost`` against ``found``.

        Raises:
            ValidationError: either record lacks a category or description.
        """
        for record in (lost, found):
            missing = record.missing_fields()
            if missing:
                raise ValidationError(record.record_id, missing)
        if lost.kind is not ItemKind.LOST or found.kind is not ItemKind.FOUND:
            raise ValueError("score() takes a lost record then a found record")

        breakdown = ScoreBreakdown(
            category=self.category_score(lost.category, found.category),
            text=text_similarity(
                f"{lost.item_name} {lost.description}",
                f"{found.item_name} {found.description}",
                self.config.ignore_stop_words,
            ),
            location=text_similarity(lost.location, found.location, self.config.ignore_stop_words),
            date=self.date_score(lost, found),
        )

        cfg = self.config
        weighted = (
            breakdown.category * cfg.category_weight
            + breakdown.text * cfg.text_weight
            + breakdown.location * cfg.location_weight
            + breakdown.date * cfg.date_weight
        ) / cfg.total_weight
        total = min(100, max(0, round_half_up(weighted)))
        return ScoreResult(total=total, breakdown=breakdown)

    @staticmethod
    def category_score(left: str, right: str) -> float:
        return 100.0 if left.strip().lower() == right.strip().lower() else 0.0

    def date_score(self, lost: ItemRecord, found: ItemRecord) -> float:
        """100 on the day of loss, decaying linearly to 0 at the window edge.

        A found date up to ``date_grace_days`` before the lost date counts as
        the same day (reporting lag); earlier than that scores 0. Missing
        dates score 0.
        """
        if lost.date is None or found.date is None:
            return 0.0
        days = (found.date - lost.date).days
        window = self.config.date_window_days
        if days < -self.config.date_grace_days or days >= window:
            return 0.0
        if days <= 0:
            return 100.0
        return 100.0 * (1.0 - days / window)
