"""
Partitioned in-memory word storage for anagram and wildcard lookups.

Words are grouped by (length, bucket), where the bucket is a coarse range of
the first letter. Matchers only scan the partitions that can hold an answer:
- length: 3..16 letters, a-z only, stored lowercase.
- bucket: 1=a-b, 2=c-d, 3=e-g, 4=h-k, 5=l-o, 6=p-r, 7=s, 8=t-z.
- each partition is a sorted list without duplicates.

Invalid input never raises here: insert/remove return False and leave the
index unchanged. Mutations can be written through to a snapshot store.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple
from contextlib import contextmanager
import bisect
import re
import threading

from jsonlog import json_log

MIN_LENGTH = 3
MAX_LENGTH = 16
BUCKETS = (1, 2, 3, 4, 5, 6, 7, 8)

# Last letter of each bucket, in bucket order.
_BUCKET_UPPER = ('b', 'd', 'g', 'k', 'o', 'r', 's', 'z')

_WORD_RE = re.compile(r'[a-z]+')
_KEY_RE = re.compile(r'L(\d+)\.(\d+)')


def bucket_of(word: str) -> int:
    """Return the bucket (1..8) of a word from its first letter only."""
    if not word:
        raise ValueError("empty word has no bucket")
    ch = word[0].lower()
    if not ('a' <= ch <= 'z'):
        raise ValueError(f"unsupported first character: {word[0]!r} (use a-z)")
    for b, upper in zip(BUCKETS, _BUCKET_UPPER):
        if ch <= upper:
            return b
    return BUCKETS[-1]


def normalize(word: str) -> str:
    return word.strip().lower()


def is_valid_word(word: str) -> bool:
    """True if the normalized word has 3..16 letters and only a-z."""
    w = normalize(word)
    return MIN_LENGTH <= len(w) <= MAX_LENGTH and _WORD_RE.fullmatch(w) is not None


def partition_key(length: int, bucket: int) -> str:
    """Snapshot key for a partition, e.g. (4, 5) -> 'L4.5'."""
    return f"L{length}.{bucket}"


def parse_partition_key(key: str) -> Optional[Tuple[int, int]]:
    """Parse 'L{length}.{bucket}'; return None for malformed or out-of-range keys."""
    m = _KEY_RE.fullmatch(key.strip()) if isinstance(key, str) else None
    if m is None:
        return None
    length, bucket = int(m.group(1)), int(m.group(2))
    if not (MIN_LENGTH <= length <= MAX_LENGTH) or bucket not in BUCKETS:
        return None
    return length, bucket


class _ReadWriteLock:
    """Many readers or one writer.

    Readers do not wait for queued writers, so a thread that already holds a
    read section can open another one without deadlock.
    """
    __slots__ = ("_cond", "_readers", "_writer")

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class WordIndex:
    """Word storage partitioned by (length, bucket).

    Data members:
    - partitions: (length, bucket) -> sorted list of words
    - store: optional snapshot store; saved after every successful mutation
    """
    bucket_of = staticmethod(bucket_of)

    def __init__(self, store=None):
        self.partitions: Dict[Tuple[int, int], List[str]] = {}
        self.store = store
        self._lock = _ReadWriteLock()
        if store is not None and store.exists():
            self.load_snapshot(store.load())

    def reading(self):
        """Context manager for a consistent read section."""
        return self._lock.read()

    def writing(self):
        """Context manager for an exclusive write section."""
        return self._lock.write()

    def _save(self) -> None:
        """Write the current state to the store (caller holds the write lock).

        Mutators undo their in-memory change when this raises, so memory and
        the snapshot never disagree.
        """
        if self.store is not None:
            self.store.save(self._export_unlocked())

    def _add_unlocked(self, w: str) -> bool:
        part = self.partitions.setdefault((len(w), bucket_of(w)), [])
        i = bisect.bisect_left(part, w)
        if i < len(part) and part[i] == w:
            return False
        part.insert(i, w)
        return True

    def _discard_unlocked(self, w: str) -> None:
        part = self.partitions.get((len(w), bucket_of(w)))
        if part:
            i = bisect.bisect_left(part, w)
            if i < len(part) and part[i] == w:
                del part[i]

    # ---------- Mutation ----------
    def insert(self, word: str) -> bool:
        """Add a word; False if invalid or already present."""
        if not isinstance(word, str) or not is_valid_word(word):
            return False
        w = normalize(word)
        with self.writing():
            if not self._add_unlocked(w):
                return False
            try:
                self._save()
            except OSError:
                self._discard_unlocked(w)
                raise
        return True

    def remove(self, word: str) -> bool:
        """Delete a word; False if invalid or not present."""
        if not isinstance(word, str) or not is_valid_word(word):
            return False
        w = normalize(word)
        with self.writing():
            part = self.partitions.get((len(w), bucket_of(w)))
            if not part:
                return False
            i = bisect.bisect_left(part, w)
            if i >= len(part) or part[i] != w:
                return False
            del part[i]
            try:
                self._save()
            except OSError:
                part.insert(i, w)
                raise
        return True

    def ingest(self, length: int, bucket: int, words: Iterable[str]) -> int:
        """Insert a batch meant for one partition; return how many were added.

        Each word gets the same checks as insert() and must also belong to
        (length, bucket). Bad words are skipped, never abort the batch.
        """
        added: List[str] = []
        rejected = 0
        with self.writing():
            for word in words:
                if not isinstance(word, str) or not is_valid_word(word):
                    rejected += 1
                    continue
                w = normalize(word)
                if len(w) != length or bucket_of(w) != bucket:
                    rejected += 1
                    continue
                if self._add_unlocked(w):
                    added.append(w)
            if added:
                try:
                    self._save()
                except OSError:
                    for w in added:
                        self._discard_unlocked(w)
                    raise
        if rejected:
            json_log("ingest_rejected", level="warning", key=partition_key(length, bucket), rejected=rejected)
        return len(added)

    def clear(self) -> None:
        with self.writing():
            previous = self.partitions
            self.partitions = {}
            try:
                self._save()
            except OSError:
                self.partitions = previous
                raise

    # ---------- Enumeration ----------
    def words_in(self, length: int, bucket: int) -> Tuple[str, ...]:
        """Read-only copy of one partition; empty tuple if absent."""
        with self.reading():
            return tuple(self.partitions.get((length, bucket), ()))

    def words_of_length(self, length: int) -> List[str]:
        """All words of one length across the 8 buckets, sorted."""
        out: List[str] = []
        with self.reading():
            for b in BUCKETS:
                out.extend(self.partitions.get((length, b), ()))
        out.sort()
        return out

    def all_words(self) -> List[str]:
        with self.reading():
            out = [w for part in self.partitions.values() for w in part]
        out.sort()
        return out

    def count(self) -> int:
        with self.reading():
            return sum(len(part) for part in self.partitions.values())

    def count_in(self, length: int, bucket: int) -> int:
        with self.reading():
            return len(self.partitions.get((length, bucket), ()))

    # ---------- Snapshot ----------
    def _export_unlocked(self) -> Dict[str, List[str]]:
        return {
            partition_key(length, bucket): list(part)
            for (length, bucket), part in sorted(self.partitions.items())
            if part
        }

    def export(self) -> Dict[str, List[str]]:
        """Whole state as {'L{length}.{bucket}': [words...]}."""
        with self.reading():
            return self._export_unlocked()

    def load_snapshot(self, mapping: Dict[str, Iterable[str]]) -> int:
        """Replace all words with the contents of a snapshot mapping.

        Keys that do not parse and words that do not fit their key are
        skipped with a warning. Returns the number of words loaded.
        """
        fresh: Dict[Tuple[int, int], List[str]] = {}
        loaded = 0
        for key, words in mapping.items():
            parsed = parse_partition_key(key)
            if parsed is None or not isinstance(words, (list, tuple)):
                json_log("snapshot_bad_key", level="warning", key=str(key))
                continue
            length, bucket = parsed
            keep = set()
            for word in words:
                if isinstance(word, str) and is_valid_word(word):
                    w = normalize(word)
                    if len(w) == length and bucket_of(w) == bucket:
                        keep.add(w)
                        continue
                json_log("snapshot_bad_word", level="warning", key=key, word=str(word))
            if keep:
                fresh[parsed] = sorted(keep)
                loaded += len(keep)
        with self.writing():
            self.partitions = fresh
        return loaded
