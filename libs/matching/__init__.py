"""Matching engine for FindBack

Given a found-item report, searches the lost-item collection (or the
reverse) and returns probable matches ranked by an integer similarity
score: coarse candidate retrieval -> pairwise scoring -> threshold, order
and truncate.
"""

from .config import MatchingConfig
from .errors import MatchingError, ValidationError, RetrievalError, ConfigurationError
from .scorer import SimilarityScorer, ScoreResult, ScoreBreakdown
from .retriever import CandidateRetriever
from .ranker import MatchRanker, MatchCandidate
from .service import MatchingService, MatchOutcome, create_matching_service

__all__ = [
    'MatchingConfig',
    'MatchingError',
    'ValidationError',
    'RetrievalError',
    'ConfigurationError',
    'SimilarityScorer',
    'ScoreResult',
    'ScoreBreakdown',
    'CandidateRetriever',
    'MatchRanker',
    'MatchCandidate',
    'MatchingService',
    'MatchOutcome',
    'create_matching_service'
]
