"""
Anagram lookup with a prime-log fingerprint.

Every letter a..z gets the logarithm of its own prime (a=2, b=3, ..., z=101),
scaled by 1e8 and rounded to an int. A word's fingerprint is the sum of its
letter weights, so all permutations of one letter multiset share a value and
comparing two candidates is a single integer test. The rounding makes the
sum only nearly injective (sixteen-letter multisets outnumber the possible
sums), so a fingerprint hit is confirmed against the sorted letters.

Only the partitions of the query length whose bucket matches one of the
query letters are scanned: an anagram has to start with one of them.
"""

from __future__ import annotations

from typing import List, Sequence
import math
import re

from index import MAX_LENGTH, MIN_LENGTH, WordIndex, bucket_of

PRIMES = (
    2, 3, 5, 7, 11, 13, 17, 19, 23, 29,
    31, 37, 41, 43, 47, 53, 59, 61, 67, 71,
    73, 79, 83, 89, 97, 101,
)
SCALE = 10 ** 8

LETTER_WEIGHTS = tuple(round(math.log(p) * SCALE) for p in PRIMES)

_NON_LETTERS = re.compile(r'[^a-z]')


def fingerprint(letters: str, weights: Sequence[int] = LETTER_WEIGHTS) -> int:
    """Integer sum of letter weights; characters outside a-z are ignored."""
    total = 0
    for ch in letters.lower():
        o = ord(ch) - 97
        if 0 <= o < 26:
            total += weights[o]
    return total


def clean_letters(letters: str) -> str:
    """Lowercase and drop everything that is not a-z."""
    return _NON_LETTERS.sub('', letters.lower())


def candidate_buckets(letters: str) -> List[int]:
    """Buckets an anagram of these letters could start in, ascending."""
    return sorted({bucket_of(ch) for ch in clean_letters(letters)})


class AnagramMatcher:
    """Find indexed words that use exactly the query's letters."""

    def __init__(self, index: WordIndex, weights: Sequence[int] = LETTER_WEIGHTS):
        if len(weights) != 26:
            raise ValueError("weight table needs one entry per letter a-z")
        self.index = index
        self.weights = tuple(weights)

    def fingerprint(self, letters: str) -> int:
        return fingerprint(letters, self.weights)

    def find_anagrams(self, letters: str) -> List[str]:
        """Return every indexed anagram of `letters`.

        Out-of-range lengths (after cleaning) match nothing. Results come in
        bucket order, then partition order.
        """
        query = clean_letters(letters)
        length = len(query)
        if length < MIN_LENGTH or length > MAX_LENGTH:
            return []
        target = self.fingerprint(query)
        letters_sorted = sorted(query)
        matches: List[str] = []
        with self.index.reading():
            for b in candidate_buckets(query):
                for word in self.index.words_in(length, b):
                    # rounded weights can collide for long words; confirm hits
                    if self.fingerprint(word) == target and sorted(word) == letters_sorted:
                        matches.append(word)
        return matches
