"""Text normalisation and similarity used by the scorer"""
from __future__ import annotations
import re
from typing import FrozenSet, List

from rapidfuzz import fuzz

STOP_WORDS: FrozenSet[str] = frozenset({
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'but', 'by', 'for', 'from',
    'has', 'have', 'i', 'in', 'is', 'it', 'its', 'my', 'near', 'of', 'on',
    'or', 'some', 'that', 'the', 'this', 'to', 'was', 'were', 'with',
})

_PUNCT_RE = re.compile(r"[^\w\s]|_")
_SPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace"""
    if not text:
        return ""
    text = _PUNCT_RE.sub(" ", text.lower())
    return _SPACE_RE.sub(" ", text).strip()


def tokenize(text: str, ignore_stop_words: bool = True) -> List[str]:
    tokens = normalize(text).split()
    if ignore_stop_words:
        kept = [t for t in tokens if t not in STOP_WORDS]
        # text made only of stop words still has to compare as itself
        return kept or tokens
    return tokens


def text_similarity(left: str, right: str, ignore_stop_words: bool = True) -> float:
    """Similarity of two free-text fields on a 0-100 scale.

    0 when the texts share no token, 100 when their normalised token
    streams are identical. In between, the mean of the token-set Dice
    coefficient and the normalised Indel similarity of the token streams.
    """
    left_tokens = tokenize(left, ignore_stop_words)
    right_tokens = tokenize(right, ignore_stop_words)
    if not left_tokens or not right_tokens:
        return 0.0
    if left_tokens == right_tokens:
        return 100.0

    left_set, right_set = set(left_tokens), set(right_tokens)
    shared = left_set & right_set
    if not shared:
        return 0.0

    dice = 2.0 * len(shared) / (len(left_set) + len(right_set))
    edit = fuzz.ratio(" ".join(left_tokens), " ".join(right_tokens)) / 100.0
    return 100.0 * (dice + edit) / 2.0
