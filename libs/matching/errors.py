"""Error taxonomy for the matching engine"""
from __future__ import annotations
from typing import List, Optional


class MatchingError(Exception):
    """Base class for matching failures"""


class ValidationError(MatchingError):
    """A record lacks a field the scorer needs; the pair is skipped"""

    def __init__(self, record_id: str, missing: List[str]):
        self.record_id = record_id
        self.missing = list(missing)
        super().__init__(f"Record {record_id or '<unsaved>'} missing required field(s): {', '.join(self.missing)}")


class RetrievalError(MatchingError):
    """The record store query failed or timed out for one item"""

    def __init__(self, item_id: str, message: str, cause: Optional[BaseException] = None):
        self.item_id = item_id
        self.cause = cause
        super().__init__(f"Candidate retrieval failed for {item_id}: {message}")


class ConfigurationError(MatchingError):
    """Invalid weights or thresholds; raised before any matching runs"""
