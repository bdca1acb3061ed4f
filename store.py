"""
Snapshot persistence for the word index.

The snapshot is a JSON object mapping 'L{length}.{bucket}' to a list of
words. A path ending in '.gz' is read and written gzip-compressed. Saves go
to a temporary file first and then replace the target, so a reader never
sees a half-written snapshot.
"""

from __future__ import annotations

from typing import Dict, List
from pathlib import Path
import gzip
import json
import os
import tempfile


class SnapshotError(ValueError):
    """Snapshot file exists but cannot be read as a partition mapping."""


class SnapshotStore:
    def __init__(self, path):
        self.path = Path(path)

    @property
    def compressed(self) -> bool:
        return self.path.suffix == '.gz'

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Dict[str, List[str]]:
        """Read the snapshot; an absent file is an empty mapping."""
        if not self.exists():
            return {}
        try:
            if self.compressed:
                with gzip.open(self.path, 'rt', encoding='utf-8') as f:
                    data = json.load(f)
            else:
                with open(self.path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
        except (OSError, ValueError) as e:
            raise SnapshotError(f"cannot read snapshot {self.path}: {e}") from e
        if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
            raise SnapshotError(f"snapshot {self.path} is not a mapping of word lists")
        return data

    def save(self, mapping: Dict[str, List[str]]) -> None:
        payload = json.dumps(mapping, ensure_ascii=False, sort_keys=True).encode('utf-8')
        if self.compressed:
            payload = gzip.compress(payload)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix='.snapshot_', dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(payload)
            os.replace(tmp, self.path)
        except OSError:
            try:
                os.remove(tmp)
            except FileNotFoundError:
                pass
            raise
