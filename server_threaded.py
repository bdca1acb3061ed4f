"""
Threaded TCP server for the crossword word index.

- Role: serve many clients concurrently; allow multiple requests per connection.
- Requests (one per line):
    `ANAGRAM <letters>` | `SEARCH <length> <pattern>` | `ADD <word>...` |
    `REMOVE <word>...` | `LIST <length> [<bucket>]` | `COUNT [<length> [<bucket>]]` |
    `STATS` | `QUIT`.
- Patterns: one symbol per letter; ' ' or '?' matches any letter.
- Response: first line `<code> <text> <count>`, optional body, final `END` line.
  SEARCH adds a `SCANNED <b1,b2,...>` line before `END`.
- Paging & gzip: ` RANGE <offset> <limit>` and ` --accept-encoding gzip` suffixes on
  ANAGRAM, SEARCH and LIST.
- Errors: `400 BAD-REQUEST`, `404 NOT-FOUND`, `409 REJECTED`, `500 STORE-ERROR`, `503 BUSY`.

The index is shared by all workers; it serializes writers itself.
"""

import argparse
import base64
import gzip
import json
import os
import signal
import socket
import sys
import threading
import time
import uuid
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import List, NamedTuple, Optional, Tuple

from anagram import AnagramMatcher
from index import BUCKETS, WordIndex
from jsonlog import json_log
from loader import ingest_wordlist, load_data_dir, load_wordlist
from pattern_search import PatternMatcher
from settings import load_config, reload_config
from store import SnapshotError, SnapshotStore

try:
    import psutil
except ImportError:
    psutil = None

LATENCY_BUCKETS_MS = [1, 5, 10, 50, 100, 500, 1000]
COMMANDS = ('ANAGRAM', 'SEARCH', 'ADD', 'REMOVE', 'LIST', 'COUNT')
PAGED_COMMANDS = ('ANAGRAM', 'SEARCH', 'LIST')


class BadRequest(Exception):
    """Request line is well-formed UTF-8 but not a valid command."""


class Response(NamedTuple):
    code: int
    text: str
    body: List[str]
    trailer: List[str]
    count: Optional[int] = None


def ok(body: List[str], trailer: Optional[List[str]] = None, count: Optional[int] = None) -> Response:
    return Response(200, 'OK', body, trailer or [], count)


def not_found(trailer: Optional[List[str]] = None) -> Response:
    return Response(404, 'NOT-FOUND', [], trailer or [], 0)


class Stats:
    """Thread-safe counters and latency histogram for observability."""
    def __init__(self):
        self._lock = threading.Lock()
        self.connections = 0
        self.active_connections = 0
        self.requests = 0
        self.command_requests = defaultdict(int)
        self.responses = defaultdict(int)
        self.total_request_time_ms = 0.0
        self.last_request_time_ms = 0.0
        self.latency_hist = {f"lt{b}": 0 for b in LATENCY_BUCKETS_MS}
        self.latency_hist["ge1000"] = 0

    def inc(self, attr: str, delta: int = 1):
        with self._lock:
            setattr(self, attr, getattr(self, attr) + delta)

    def record_command(self, cmd: str):
        with self._lock:
            self.command_requests[cmd] += 1

    def record_response(self, code: int):
        with self._lock:
            self.responses[code] += 1

    def connection_opened(self):
        with self._lock:
            self.connections += 1
            self.active_connections += 1

    def connection_closed(self):
        with self._lock:
            if self.active_connections > 0:
                self.active_connections -= 1

    def record_request_time(self, ms: float):
        with self._lock:
            self.total_request_time_ms += ms
            self.last_request_time_ms = ms
            for b in LATENCY_BUCKETS_MS:
                if ms < b:
                    self.latency_hist[f"lt{b}"] += 1
                    break
            else:
                self.latency_hist["ge1000"] += 1

    def snapshot(self):
        with self._lock:
            errors = sum(n for code, n in self.responses.items() if code >= 400)
            return {
                'connections': self.connections,
                'active_connections': self.active_connections,
                'requests': self.requests,
                **{f"{c.lower()}_requests": self.command_requests[c] for c in COMMANDS + ('STATS',)},
                'ok_responses': self.responses[200],
                'not_found_responses': self.responses[404],
                'rejected_responses': self.responses[409],
                'bad_request_responses': self.responses[400],
                'avg_request_time_ms': (self.total_request_time_ms / self.requests) if self.requests else 0.0,
                'last_request_time_ms': self.last_request_time_ms,
                'error_rate': (errors / self.requests) if self.requests else 0.0,
                'latency_hist': dict(self.latency_hist),
            }


def split_options(rest: str) -> Tuple[str, bool, int, Optional[int]]:
    """Strip ` --accept-encoding gzip` and ` RANGE off lim` suffixes from `rest`."""
    request_gzip = False
    offset = 0
    limit = None
    if ' --accept-encoding ' in rest:
        rest, enc_part = rest.rsplit(' --accept-encoding ', 1)
        if enc_part.strip().lower() != 'gzip':
            raise BadRequest("invalid encoding")
        request_gzip = True
    if ' RANGE ' in rest:
        rest, range_part = rest.rsplit(' RANGE ', 1)
        rng_tokens = range_part.strip().split()
        if len(rng_tokens) != 2 or not all(t.isdecimal() for t in rng_tokens):
            raise BadRequest("invalid RANGE")
        offset = int(rng_tokens[0])
        limit = int(rng_tokens[1])
    return rest, request_gzip, offset, limit


def _parse_ints(arg: str, lo: int, hi: int, usage: str) -> List[int]:
    tokens = arg.split()
    if not (lo <= len(tokens) <= hi) or not all(t.isdecimal() for t in tokens):
        raise BadRequest(f"expected '{usage}'")
    return [int(t) for t in tokens]


def dispatch(cmd: str, arg: str, index: WordIndex) -> Response:
    """Run one command against the index and build its response."""
    if cmd == 'ANAGRAM':
        if not arg.strip():
            raise BadRequest("expected 'ANAGRAM <letters>'")
        words = AnagramMatcher(index).find_anagrams(arg)
        return ok(words) if words else not_found()

    if cmd == 'SEARCH':
        head, _, pattern = arg.partition(' ')
        if not head.isdecimal() or not pattern:
            raise BadRequest("expected 'SEARCH <length> <pattern>'")
        result = PatternMatcher(index).search(pattern, int(head))
        scanned = [f"SCANNED {','.join(str(b) for b in result.searched_buckets)}".rstrip()]
        return ok(result.words, scanned) if result.words else not_found(scanned)

    if cmd in ('ADD', 'REMOVE'):
        words = arg.split()
        if not words:
            raise BadRequest(f"expected '{cmd} <word>'")
        op = index.insert if cmd == 'ADD' else index.remove
        done = [w for w in words if op(w)]
        if done:
            return ok([], count=len(done))
        if cmd == 'ADD':
            return Response(409, 'REJECTED', [], [], 0)
        return not_found()

    if cmd == 'LIST':
        nums = _parse_ints(arg, 1, 2, 'LIST <length> [<bucket>]')
        if len(nums) == 2:
            words = list(index.words_in(nums[0], nums[1]))
        else:
            words = index.words_of_length(nums[0])
        return ok(words) if words else not_found()

    if cmd == 'COUNT':
        nums = _parse_ints(arg, 0, 2, 'COUNT [<length> [<bucket>]]')
        if not nums:
            n = index.count()
        elif len(nums) == 1:
            n = sum(index.count_in(nums[0], b) for b in BUCKETS)
        else:
            n = index.count_in(nums[0], nums[1])
        return ok([], count=n)

    raise BadRequest("unknown command")


def stats_lines(stats: Stats, index: WordIndex) -> List[str]:
    snap = stats.snapshot()
    lines = [f"{k} {v}" for k, v in snap.items() if not isinstance(v, (dict, float))]
    lines.append(f"avg_request_time_ms {snap['avg_request_time_ms']:.3f}")
    lines.append(f"last_request_time_ms {snap['last_request_time_ms']:.3f}")
    lines.append(f"error_rate {snap['error_rate']:.6f}")
    lines.append(f"words_total {index.count()}")
    try:
        if psutil is not None:
            proc = psutil.Process()
            lines.append(f"memory_rss_bytes {proc.memory_info().rss}")
            lines.append(f"cpu_percent {proc.cpu_percent(interval=0.0):.1f}")
    except (OSError, AttributeError, RuntimeError):
        pass
    for k, v in snap['latency_hist'].items():
        lines.append(f"latency_ms_{k} {v}")
    return lines


def handle_connection(conn: socket.socket, addr, index: WordIndex, stats: Stats,
                      request_timeout: float = 30.0, max_line_length: int = 1000):
    """Serve one client; loop for multiple requests until QUIT/EOF."""
    def send(s: str):
        conn.sendall(s.encode('utf-8'))

    def reject(reason: str, t0: float, request_id: str, cmd: str = ''):
        send(f"400 BAD-REQUEST {reason}\nEND\n")
        stats.record_response(400)
        dt = (time.perf_counter() - t0) * 1000
        stats.record_request_time(dt)
        json_log("bad_request", reason=reason, cmd=cmd, latency_ms=dt, request_id=request_id, remote=str(addr))

    try:
        with conn:
            conn.settimeout(float(request_timeout))
            f = conn.makefile('rwb', buffering=0)
            stats.connection_opened()
            while True:
                t0 = time.perf_counter()
                request_id = uuid.uuid4().hex
                try:
                    raw = f.readline(max_line_length + 2)
                except socket.timeout:
                    reject("timeout", t0, request_id)
                    break
                if not raw:
                    break
                if len(raw.rstrip(b'\r\n')) > max_line_length:
                    # drain the rest of an oversized line before answering
                    while raw and not raw.endswith(b'\n'):
                        raw = f.readline(max_line_length + 2)
                    reject("line too long", t0, request_id)
                    continue
                try:
                    line = raw.decode('utf-8').rstrip('\r\n')
                except UnicodeDecodeError:
                    reject("non-utf8", t0, request_id)
                    continue
                if not line.strip():
                    continue
                stats.inc('requests')
                cmd, _, rest = line.partition(' ')
                cmd = cmd.upper()
                if cmd == 'QUIT':
                    break
                if cmd == 'STATS':
                    stats.record_command(cmd)
                    lines = stats_lines(stats, index)
                    send(f"200 OK {len(lines)}\n" + ''.join(s + "\n" for s in lines) + "END\n")
                    stats.record_response(200)
                    dt = (time.perf_counter() - t0) * 1000
                    stats.record_request_time(dt)
                    json_log("stats", count=len(lines), latency_ms=dt, request_id=request_id, remote=str(addr))
                    continue
                if cmd not in COMMANDS:
                    reject("expected ANAGRAM, SEARCH, ADD, REMOVE, LIST, COUNT, STATS or QUIT", t0, request_id, cmd)
                    continue
                stats.record_command(cmd)

                request_gzip = False
                offset, limit = 0, None
                try:
                    if cmd in PAGED_COMMANDS:
                        rest, request_gzip, offset, limit = split_options(rest)
                    resp = dispatch(cmd, rest, index)
                except BadRequest as e:
                    reject(str(e), t0, request_id, cmd)
                    continue
                except OSError as e:
                    # the index undid the change, so memory still matches the snapshot
                    send("500 STORE-ERROR 0\nEND\n")
                    stats.record_response(500)
                    json_log("store_error", level="error", cmd=cmd, error=str(e), request_id=request_id)
                    continue

                body = resp.body
                if limit is not None:
                    body = body[offset: offset + limit]
                count = len(body) if resp.count is None else resp.count
                if resp.code == 200 and body and request_gzip:
                    # Send compressed body in one line to reduce transfer size.
                    gz = gzip.compress('\n'.join(body).encode('utf-8'))
                    payload = ["GZIP " + base64.b64encode(gz).decode('ascii')]
                    count = 1
                else:
                    payload = body
                send(f"{resp.code} {resp.text} {count}\n"
                     + ''.join(s + "\n" for s in payload + resp.trailer) + "END\n")
                stats.record_response(resp.code)
                dt = (time.perf_counter() - t0) * 1000
                stats.record_request_time(dt)
                json_log(cmd.lower(), arg=rest, code=resp.code, count=len(body), latency_ms=dt,
                         gzip=request_gzip, offset=offset, limit=limit, request_id=request_id, remote=str(addr))
    except (BrokenPipeError, ConnectionResetError, ConnectionAbortedError) as e:
        json_log("connection_error", level="warning", remote=str(addr), error=str(e))
    except OSError as e:
        json_log("os_error", level="warning", remote=str(addr), error=str(e))
    finally:
        stats.connection_closed()


def build_index(args) -> WordIndex:
    """Create the index from the snapshot, then add data files and word lists."""
    store = SnapshotStore(args.snapshot) if args.snapshot else None
    index = WordIndex(store)
    if args.data_dir:
        load_data_dir(index, args.data_dir)
    if args.wordlist:
        added = ingest_wordlist(index, load_wordlist(args.wordlist))
        json_log("wordlist_loaded", path=args.wordlist, added=added)
    return index


def main():
    """Parse flags, load words, and serve concurrently with a thread pool."""
    ap = argparse.ArgumentParser(description="Crossword word index server.")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8081)
    ap.add_argument("--wordlist", help="Text file with one word per line.")
    ap.add_argument("--data-dir", help="Directory of L{length}.{bucket}.txt files.")
    ap.add_argument("--snapshot", help="JSON snapshot file (.gz for gzip); saved on every change.")
    ap.add_argument("--config", help="Path to JSON config.")
    ap.add_argument("--health-port", type=int, default=0, help="HTTP health port. Use >0 to enable.")
    args = ap.parse_args()

    cfg = load_config(args.config)
    last_cfg_mtime = None
    if args.config:
        try:
            last_cfg_mtime = os.path.getmtime(args.config)
        except OSError:
            pass

    try:
        index = build_index(args)
    except (SnapshotError, OSError) as e:
        json_log("startup_failed", level="error", error=str(e))
        sys.exit(2)
    stats = Stats()
    start_time = time.time()

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((args.host, args.port))
    sock.listen(20)
    sock.settimeout(1.0)
    print(f"[THREADED] Listening on {args.host}:{args.port}, words={index.count()}", flush=True)
    httpd = None
    if int(args.health_port) > 0:
        class HealthHandler(BaseHTTPRequestHandler):
            def log_message(self, fmt, *args):
                pass

            def do_GET(self):
                # Minimal /health endpoint to check liveness and stats.
                if self.path == '/health':
                    body = json.dumps({
                        'status': 'ok',
                        'uptime_s': round(time.time() - start_time, 3),
                        'words_total': index.count(),
                        **stats.snapshot()
                    }, ensure_ascii=False).encode('utf-8')
                    self.send_response(200)
                    self.send_header('Content-Type', 'application/json; charset=utf-8')
                    self.send_header('Content-Length', str(len(body)))
                    self.end_headers()
                    self.wfile.write(body)
                else:
                    self.send_response(404)
                    self.end_headers()
        try:
            httpd = HTTPServer((args.host, int(args.health_port)), HealthHandler)
            threading.Thread(target=httpd.serve_forever, daemon=True).start()
            print(f"[THREADED] Health at http://{args.host}:{int(args.health_port)}/health", flush=True)
        except OSError as e:
            json_log("health_server_failed", level="error", error=str(e))
            httpd = None

    shutdown_evt = threading.Event()

    def _sig_handler(_signum, _frame):
        shutdown_evt.set()
    try:
        signal.signal(signal.SIGINT, _sig_handler)
        signal.signal(signal.SIGTERM, _sig_handler)
    except (ValueError, OSError, RuntimeError, AttributeError):
        pass
    executor = ThreadPoolExecutor(max_workers=int(cfg['max_workers']))
    try:
        while not shutdown_evt.is_set():
            if args.config:
                try:
                    mtime = os.path.getmtime(args.config)
                    if last_cfg_mtime is None or mtime > last_cfg_mtime:
                        cfg = reload_config(cfg, args.config)
                        last_cfg_mtime = mtime
                        json_log("config_reloaded", path=args.config)
                except OSError:
                    pass
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            # Backpressure: drop new connection when too many are active.
            if stats.snapshot()['active_connections'] >= int(cfg['max_concurrent_connections']):
                try:
                    conn.sendall(b"503 BUSY 0\nEND\n")
                except OSError:
                    pass
                conn.close()
                continue
            executor.submit(handle_connection, conn, addr, index, stats,
                            float(cfg['request_timeout']), int(cfg['max_line_length']))
    except KeyboardInterrupt:
        print("\n[THREADED] Shutting down.")
    finally:
        if httpd is not None:
            try:
                httpd.shutdown()
                httpd.server_close()
            except (OSError, RuntimeError):
                pass
        executor.shutdown(wait=True)
        sock.close()


if __name__ == "__main__":
    main()
