"""
Server configuration: defaults, optional JSON file, then environment.

Later layers win: DEFAULTS <- config file <- SERVER_<KEY> environment
variables. Every value is clamped to a safe range at the end, so a typo in a
config file degrades to a sane limit instead of crashing the server.
reload_config() is what a running server uses; it never resizes the worker
pool.
"""

import json
import os

from jsonlog import json_log

DEFAULTS = {
    "max_workers": 50,
    "request_timeout": 30,
    "max_line_length": 1000,
    "max_concurrent_connections": 1000,
}


def _clampi(v, lo, hi):
    try:
        v = int(v)
    except (TypeError, ValueError):
        return lo
    return max(lo, min(hi, v))


def _clampf(v, lo, hi):
    try:
        v = float(v)
    except (TypeError, ValueError):
        return lo
    return max(lo, min(hi, v))


def validate(cfg_in: dict) -> dict:
    """Clamp config values to safe ranges to avoid misuse."""
    out = dict(cfg_in)
    out['request_timeout'] = _clampf(out.get('request_timeout', 30), 0.1, 3600)
    out['max_line_length'] = _clampi(out.get('max_line_length', 1000), 16, 1_000_000)
    out['max_workers'] = _clampi(out.get('max_workers', 50), 1, 10_000)
    out['max_concurrent_connections'] = _clampi(out.get('max_concurrent_connections', 1000), 1, 1_000_000)
    return out


def apply_env_overrides(base: dict, env=None) -> dict:
    """Allow environment variables to override config values."""
    env = os.environ if env is None else env
    out = dict(base)
    for k in list(out.keys()):
        env_name = 'SERVER_' + k.upper()
        if env.get(env_name, '') != '':
            out[k] = env[env_name]
    return out


def load_config(path=None, env=None) -> dict:
    """Build the effective config from defaults, `path` and the environment."""
    file_cfg = {}
    if path:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_cfg = json.load(f)
        except (OSError, ValueError) as e:
            json_log("config_load_failed", level="error", path=str(path), error=str(e))
        if not isinstance(file_cfg, dict):
            json_log("config_load_failed", level="error", path=str(path), error="not a JSON object")
            file_cfg = {}
    merged = dict(DEFAULTS)
    for k in merged.keys():
        if k in file_cfg:
            merged[k] = file_cfg[k]
    return validate(apply_env_overrides(merged, env))


# Sized once when the worker pool starts; a reload cannot change them.
STARTUP_ONLY = ("max_workers",)


def reload_config(current: dict, path=None, env=None) -> dict:
    """Re-read the config for a running server.

    Keys in STARTUP_ONLY keep their current value; a changed value is logged
    and takes effect after a restart.
    """
    fresh = load_config(path, env)
    for k in STARTUP_ONLY:
        if fresh[k] != current[k]:
            json_log("config_needs_restart", level="warning", key=k, current=current[k], requested=fresh[k])
            fresh[k] = current[k]
    return fresh
