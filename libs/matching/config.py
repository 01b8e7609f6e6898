"""Matching configuration"""
from __future__ import annotations
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError


@dataclass(frozen=True)
class MatchingConfig:
    """Weights, windows and thresholds for the matching engine"""
    category_weight: float = 30.0
    text_weight: float = 40.0
    location_weight: float = 15.0
    date_weight: float = 15.0

    date_window_days: int = 30  # found date must fall within this many days of the loss
    date_grace_days: int = 1  # tolerated reporting lag when found precedes lost

    min_score: int = 50
    result_limit: int = 5

    ignore_stop_words: bool = True

    @property
    def total_weight(self) -> float:
        return self.category_weight + self.text_weight + self.location_weight + self.date_weight

    @property
    def retrieval_window_days(self) -> int:
        """Date window the retriever uses; wider than scoring so no true match is cut early"""
        return self.date_window_days + self.date_grace_days

    def validate(self) -> "MatchingConfig":
        """Raise ConfigurationError on any invalid setting, else return self"""
        for name in ("category_weight", "text_weight", "location_weight", "date_weight"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {value}")
        if self.total_weight <= 0:
            raise ConfigurationError("At least one weight must be positive")
        if self.date_window_days <= 0:
            raise ConfigurationError(f"date_window_days must be > 0, got {self.date_window_days}")
        if self.date_grace_days < 0:
            raise ConfigurationError(f"date_grace_days must be >= 0, got {self.date_grace_days}")
        if not 0 <= self.min_score <= 100:
            raise ConfigurationError(f"min_score must be within [0, 100], got {self.min_score}")
        if self.result_limit < 1:
            raise ConfigurationError(f"result_limit must be >= 1, got {self.result_limit}")
        return self

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "MatchingConfig":
        """Build from the ``matching`` config section.

        Values coming from environment overrides arrive as strings, so each
        one is coerced to the field's type. Unknown keys are rejected.
        """
        if not data:
            return cls()
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigurationError(f"Unknown matching setting(s): {', '.join(unknown)}")
        values: Dict[str, Any] = {}
        defaults = cls()
        for key, raw in data.items():
            target = type(getattr(defaults, key))
            try:
                if target is bool and isinstance(raw, str):
                    values[key] = raw.strip().lower() in ("1", "true", "yes", "on")
                else:
                    values[key] = target(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid value for {key}: {raw!r}") from e
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
