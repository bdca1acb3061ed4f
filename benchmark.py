"""
Load generator for the threaded word index server.

Opens a fresh connection per request from `--concurrency` worker threads for
`--duration` seconds and reports throughput and latency percentiles.
"""

import argparse
import concurrent.futures
import socket
import threading
import time
from statistics import mean


def send_cmd(host: str, port: int, cmd: str, timeout: float = 2.0):
    t0 = time.perf_counter()
    try:
        with socket.create_connection((host, port), timeout=timeout) as s:
            f = s.makefile('rwb', buffering=0)
            f.write((cmd + "\n").encode('utf-8'))
            status = f.readline()
            # drain quickly
            while True:
                line = f.readline()
                if not line or line.strip() == b'END':
                    break
        ok = status[:3] in (b'200', b'404')
    except OSError:
        ok = False
    return ok, time.perf_counter() - t0


def percentile(sorted_vals, q: float) -> float:
    if not sorted_vals:
        return 0.0
    return sorted_vals[min(len(sorted_vals) - 1, int(q * len(sorted_vals)))]


def run_benchmark(host: str, port: int, cmd: str, concurrency: int, duration_s: float):
    latencies = []
    counts = {'successes': 0, 'total': 0}
    lock = threading.Lock()
    stop_t = time.time() + duration_s

    def worker():
        while time.time() < stop_t:
            ok, dt = send_cmd(host, port, cmd)
            with lock:
                counts['total'] += 1
                if ok:
                    counts['successes'] += 1
                    latencies.append(dt)
    with concurrent.futures.ThreadPoolExecutor(max_workers=concurrency) as ex:
        futs = [ex.submit(worker) for _ in range(concurrency)]
        for f in futs:
            f.result()
    ordered = sorted(latencies)
    return {
        'total_requests': counts['total'],
        'successes': counts['successes'],
        'qps': counts['successes'] / duration_s if duration_s > 0 else 0.0,
        'avg_latency_ms': (mean(latencies) * 1000.0) if latencies else 0.0,
        'p50_ms': percentile(ordered, 0.50) * 1000.0,
        'p95_ms': percentile(ordered, 0.95) * 1000.0,
        'p99_ms': percentile(ordered, 0.99) * 1000.0,
    }


if __name__ == '__main__':
    ap = argparse.ArgumentParser()
    ap.add_argument('--host', default='127.0.0.1')
    ap.add_argument('--port', type=int, required=True)
    ap.add_argument('--cmd', default='ANAGRAM tca')
    ap.add_argument('--concurrency', type=int, default=50)
    ap.add_argument('--duration', type=float, default=5.0)
    args = ap.parse_args()
    print(run_benchmark(args.host, args.port, args.cmd, args.concurrency, args.duration))
