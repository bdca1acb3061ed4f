"""
TCP client for the threaded word index server.

Runs one query with --query, or keeps the connection open and reads queries
from the prompt until 'quit'. A line is sent as a command when it starts with
one of the server commands; any other text is looked up as an anagram:

    > tca                -> ANAGRAM tca
    > search 3 c?t       -> SEARCH 3 c?t   ('?' or ' ' = any letter)
    > add crate          -> ADD crate
    > count 5            -> COUNT 5

--gzip and --range OFFSET LIMIT are added to ANAGRAM, SEARCH and LIST.
"""

import argparse
import base64
import gzip
import socket

COMMANDS = ('ANAGRAM', 'SEARCH', 'ADD', 'REMOVE', 'LIST', 'COUNT', 'STATS')
PAGED_COMMANDS = ('ANAGRAM', 'SEARCH', 'LIST')


def recv_until_end(f) -> list[str]:
    """Read response lines until the 'END' line, decoding a gzip body.

    A compressed body arrives as one line 'GZIP <base64>'; it is expanded in
    place and any following lines (like SCANNED) are kept.
    """
    lines: list[str] = []
    while True:
        line = f.readline()
        if not line:
            break
        sline = line.decode('utf-8', errors='ignore').rstrip('\r\n')
        if sline == "END":
            break
        lines.append(sline)
    if lines and lines[0].startswith('GZIP '):
        try:
            data = gzip.decompress(base64.b64decode(lines[0][5:])).decode('utf-8')
            return (data.split('\n') if data else []) + lines[1:]
        except (OSError, ValueError):
            return lines
    return lines


def build_request(query: str, gzip_body: bool = False, page=None) -> str:
    """Turn user input into one protocol line (without the newline)."""
    cmd, _, rest = query.partition(' ')
    if cmd.upper() in COMMANDS:
        cmd = cmd.upper()
        line = f"{cmd} {rest}" if rest else cmd
    else:
        cmd = 'ANAGRAM'
        line = f"ANAGRAM {query}"
    if cmd in PAGED_COMMANDS:
        if page is not None:
            off, lim = page
            line += f" RANGE {off} {lim}"
        if gzip_body:
            line += " --accept-encoding gzip"
    return line


def run_query(f, request: str) -> tuple[str, list[str]]:
    f.write((request + "\n").encode('utf-8'))
    status = f.readline().decode('utf-8', errors='ignore').rstrip('\r\n')
    return status, recv_until_end(f)


def print_response(status: str, lines: list[str]) -> None:
    print(status)
    for ln in lines:
        print(ln)
    print("END")
    toks = status.split()
    if len(toks) >= 3 and toks[0].isdigit() and toks[-1].isdigit():
        print(f"(client) total: {int(toks[-1])}")


def main():
    """Open one TCP connection and serve user input until 'quit'."""
    ap = argparse.ArgumentParser()
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8081)
    ap.add_argument("--query", help="Run a single query and exit.")
    ap.add_argument("--gzip", action="store_true", help="Ask for gzip response.")
    ap.add_argument("--range", nargs=2, metavar=("OFFSET", "LIMIT"), type=int, help="Page results.")
    args = ap.parse_args()

    with socket.create_connection((args.host, args.port)) as s:
        f = s.makefile('rwb', buffering=0)
        if args.query:
            print_response(*run_query(f, build_request(args.query, args.gzip, args.range)))
            f.write(b"QUIT\n")
            return
        print("(client) connected. Type letters for anagrams or a command. Type 'quit' to exit.")
        while True:
            try:
                q = input("> ").strip('\r\n')
            except (EOFError, KeyboardInterrupt):
                q = "quit"
            if not q.strip():
                continue
            if q.strip().lower() == "quit":
                f.write(b"QUIT\n")
                break
            print_response(*run_query(f, build_request(q, args.gzip, args.range)))
    print("(client) done.")


if __name__ == "__main__":
    main()
