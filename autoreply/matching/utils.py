"""Text helpers used by the matcher.

This module provides normalization, word-boundary search, edit distance and
the tag labels attached to match results.
"""

import re
from typing import Iterable, List

WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_text(text: str, case_sensitive: bool = False) -> str:
    """Prepare text for comparison.

    Args:
        text: Raw message text
        case_sensitive: Keep the original case when True

    Returns:
        Text lowercased unless case_sensitive
    """
    if text is None:
        return ""
    return text if case_sensitive else text.lower()


def contains_word(text: str, term: str) -> bool:
    """Check whether term occurs in text delimited by non-word characters or edges.

    The comparison ignores case regardless of rule settings.

    Examples:
        >>> contains_word("berapa harga?", "harga")
        True
        >>> contains_word("hargaku", "harga")
        False
    """
    if not term:
        return False
    pattern = re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)", re.IGNORECASE)
    return pattern.search(text) is not None


def tokenize(text: str) -> List[str]:
    """Split text on runs of whitespace."""
    return [token for token in WHITESPACE_PATTERN.split(text) if token]


def levenshtein_distance(a: str, b: str) -> int:
    """Compute the edit distance between two strings.

    Counts single-character insertions, deletions and substitutions using a
    two-row dynamic programme.
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current.append(previous[j - 1])
            else:
                current.append(min(previous[j - 1], previous[j], current[j - 1]) + 1)
        previous = current

    return previous[-1]


def similarity(a: str, b: str) -> float:
    """Normalized similarity: 1 - distance / max(len(a), len(b))."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / longest


def best_token_similarity(tokens: Iterable[str], term: str) -> float:
    """Highest similarity between term and any token (0.0 when there are none)."""
    best = 0.0
    for token in tokens:
        score = similarity(token, term)
        if score > best:
            best = score
    return best


def generate_tag(keyword: str, priority: int) -> str:
    """Build a label from the priority band and the keyword.

    Examples:
        >>> generate_tag("harga promo", 9)
        'high_priority_harga_promo'
        >>> generate_tag("stok", 3)
        'low_priority_stok'
    """
    base = WHITESPACE_PATTERN.sub("_", keyword).lower()
    if priority >= 8:
        return f"high_priority_{base}"
    if priority >= 5:
        return f"medium_priority_{base}"
    return f"low_priority_{base}"
