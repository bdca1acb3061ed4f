"""
Bulk loading of word data into a WordIndex.

Two input formats are supported:
- data files named 'L{length}.{bucket}.txt' holding a decimal word count
  followed by the words glued together at fixed width, e.g. '3catcotcut';
- plain word lists with one word per line.

Bad words are skipped one by one; a bad file never stops the others.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple
from collections import defaultdict
from pathlib import Path
import re

from index import BUCKETS, MAX_LENGTH, MIN_LENGTH, WordIndex, bucket_of, is_valid_word, normalize
from jsonlog import json_log

_COUNT_RE = re.compile(r'\s*(\d+)')
_LETTERS_RE = re.compile(r'[a-z]+')


def data_file_name(length: int, bucket: int) -> str:
    return f"L{length}.{bucket}.txt"


def parse_word_file(content: str, length: int) -> List[str]:
    """Split a count-prefixed fixed-width stream into words of `length`.

    Chunks that are short or contain non-letters are dropped.
    """
    m = _COUNT_RE.match(content)
    if m is None or length <= 0:
        return []
    declared = int(m.group(1))
    data = content[m.end():].strip()
    words: List[str] = []
    for i in range(0, len(data), length):
        chunk = data[i : i + length]
        if len(chunk) == length and _LETTERS_RE.fullmatch(chunk):
            words.append(chunk)
    if declared != len(words):
        json_log("word_file_count_mismatch", level="warning", length=length, declared=declared, parsed=len(words))
    return words


def load_data_dir(index: WordIndex, path) -> int:
    """Ingest every L{length}.{bucket}.txt file found in `path`."""
    root = Path(path)
    total = 0
    for length in range(MIN_LENGTH, MAX_LENGTH + 1):
        for bucket in BUCKETS:
            fp = root / data_file_name(length, bucket)
            if not fp.is_file():
                continue
            try:
                content = fp.read_text(encoding='utf-8', errors='ignore')
            except OSError as e:
                json_log("data_file_error", level="error", file=str(fp), error=str(e))
                continue
            added = index.ingest(length, bucket, parse_word_file(content, length))
            json_log("data_file_loaded", level="debug", file=fp.name, added=added)
            total += added
    json_log("data_dir_loaded", path=str(root), added=total)
    return total


def load_wordlist(path) -> List[str]:
    """Read words from file; ignore empty lines and decoding errors."""
    with open(path, 'r', encoding='utf-8', errors='ignore') as f:
        return [line.strip() for line in f if line.strip()]


def ingest_wordlist(index: WordIndex, words: Iterable[str]) -> int:
    """Insert a mixed word list; return how many were accepted.

    Words are grouped per partition first so a snapshot store is written
    once per partition instead of once per word.
    """
    groups: Dict[Tuple[int, int], List[str]] = defaultdict(list)
    rejected = 0
    for w in words:
        if not is_valid_word(w):
            rejected += 1
            continue
        n = normalize(w)
        groups[(len(n), bucket_of(n))].append(n)
    if rejected:
        json_log("wordlist_rejected", level="debug", rejected=rejected)
    return sum(index.ingest(length, bucket, ws) for (length, bucket), ws in sorted(groups.items()))
