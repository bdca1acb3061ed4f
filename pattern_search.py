"""
Fixed-length wildcard search over the partitioned index.

A pattern has one symbol per letter of the target word:
- a letter must match that position (case-insensitive);
- ' ' or '?' matches any single letter.

Only the first symbol narrows the scan: a known first letter selects one
bucket, a wildcard first symbol scans all 8. Other positions are checked by a
linear pass over the chosen partitions.
"""

from __future__ import annotations

from typing import List, NamedTuple, Tuple

from index import BUCKETS, MAX_LENGTH, MIN_LENGTH, WordIndex, bucket_of

WILDCARDS = frozenset(' ?')


class SearchResult(NamedTuple):
    words: List[str]
    searched_buckets: Tuple[int, ...]


def matches_pattern(word: str, pattern: str) -> bool:
    """True if every pattern symbol is a wildcard or equals the word's letter."""
    if len(word) != len(pattern):
        return False
    for pc, wc in zip(pattern.lower(), word.lower()):
        if pc in WILDCARDS:
            continue
        if pc != wc:
            return False
    return True


def buckets_for(pattern: str) -> Tuple[int, ...]:
    """Buckets that can hold a match, from the pattern's first symbol."""
    if not pattern:
        return ()
    first = pattern[0].lower()
    if first in WILDCARDS:
        return BUCKETS
    if 'a' <= first <= 'z':
        return (bucket_of(first),)
    # a symbol that is neither a letter nor a wildcard never matches
    return ()


class PatternMatcher:
    """Search one word length for words fitting a wildcard pattern."""

    def __init__(self, index: WordIndex):
        self.index = index

    def search(self, pattern: str, length: int) -> SearchResult:
        """Return matches plus the buckets that were scanned.

        The pattern length must equal `length`, and `length` must be a
        storable word length; otherwise nothing is scanned.
        """
        if len(pattern) != length or not (MIN_LENGTH <= length <= MAX_LENGTH):
            return SearchResult([], ())
        pat = pattern.lower()
        scanned = buckets_for(pat)
        matches: List[str] = []
        with self.index.reading():
            for b in scanned:
                for word in self.index.words_in(length, b):
                    if matches_pattern(word, pat):
                        matches.append(word)
        return SearchResult(matches, scanned)
