"""
Tiny structured logger: one JSON object per line on stderr.

Each record has `ts`, `level` and `event` plus any extra fields. The minimum
level comes from the XWORD_LOG_LEVEL environment variable (default: info).
Logging is best-effort; a record that cannot be written is dropped.
"""

import json
import os
import sys
import time

LEVELS = {"debug": 10, "info": 20, "warning": 30, "error": 40}


def _threshold() -> int:
    name = os.environ.get("XWORD_LOG_LEVEL", "info").strip().lower()
    return LEVELS.get(name, LEVELS["info"])


def json_log(event: str, level: str = "info", **fields):
    """Best-effort JSON log to stderr for debugging/benchmarking."""
    if LEVELS.get(level, LEVELS["info"]) < _threshold():
        return
    try:
        rec = {"ts": time.time(), "level": level, "event": event}
        rec.update(fields)
        print(json.dumps(rec, ensure_ascii=False), file=sys.stderr)
    except (OSError, ValueError, TypeError):
        pass
