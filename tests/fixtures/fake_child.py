#!/usr/bin/env python3
"""Fake child program for process shell tests.

Each subcommand reproduces one child behaviour the tests need.

Usage:
    python fake_child.py finish TEXT [--delay SECONDS] [--exit-code CODE]
    python fake_child.py silent [--delay SECONDS] [--exit-code CODE]
    python fake_child.py env NAME
    python fake_child.py wrap
    python fake_child.py bytes
    python fake_child.py error ERR OUT [--delay SECONDS]
    python fake_child.py flood COUNT
    python fake_child.py sleep SECONDS
    python fake_child.py wait-eof

Subcommands:
    finish: sleep, print "finish:TEXT" and exit
    silent: sleep and exit without output
    env: print NAME=<value of $NAME>
    wrap: echo each stdin line as "<line>"
    bytes: print every stdin byte as "<signed byte>"
    error: print "error:ERR" to stderr, sleep, print "out:OUT" to stdout
    flood: print COUNT numbered lines on stdout and stderr
    sleep: sleep, then print "slept"
    wait-eof: block reading stdin, print "eof:<byte count>"
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from typing import NoReturn


def emit(text: str, stream=None) -> None:
    """Print one line and flush immediately."""
    print(text, file=stream or sys.stdout, flush=True)


def main() -> NoReturn:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fake child for testing")
    sub = parser.add_subparsers(dest="mode", required=True)

    finish = sub.add_parser("finish")
    finish.add_argument("text")
    finish.add_argument("--delay", type=float, default=0.2)
    finish.add_argument("--exit-code", type=int, default=0)

    silent = sub.add_parser("silent")
    silent.add_argument("--delay", type=float, default=0.2)
    silent.add_argument("--exit-code", type=int, default=0)

    env = sub.add_parser("env")
    env.add_argument("name")

    sub.add_parser("wrap")
    sub.add_parser("bytes")

    error = sub.add_parser("error")
    error.add_argument("err")
    error.add_argument("out")
    error.add_argument("--delay", type=float, default=0.2)

    flood = sub.add_parser("flood")
    flood.add_argument("count", type=int)

    sleep = sub.add_parser("sleep")
    sleep.add_argument("seconds", type=float)

    sub.add_parser("wait-eof")

    args = parser.parse_args()
    exit_code = 0

    if args.mode == "finish":
        time.sleep(args.delay)
        emit(f"finish:{args.text}")
        exit_code = args.exit_code

    elif args.mode == "silent":
        time.sleep(args.delay)
        exit_code = args.exit_code

    elif args.mode == "env":
        emit(f"{args.name}={os.environ.get(args.name)}")

    elif args.mode == "wrap":
        for line in sys.stdin:
            emit(f"<{line.rstrip(chr(10)).rstrip(chr(13))}>")

    elif args.mode == "bytes":
        data = sys.stdin.buffer.read()
        signed = (b - 256 if b > 127 else b for b in data)
        emit("".join(f"<{b}>" for b in signed))

    elif args.mode == "error":
        emit(f"error:{args.err}", sys.stderr)
        time.sleep(args.delay)
        emit(f"out:{args.out}")

    elif args.mode == "flood":
        for i in range(args.count):
            sys.stdout.write(f"out-{i}\n")
            sys.stderr.write(f"err-{i}\n")
        sys.stdout.flush()
        sys.stderr.flush()

    elif args.mode == "sleep":
        time.sleep(args.seconds)
        emit("slept")

    elif args.mode == "wait-eof":
        data = sys.stdin.buffer.read()
        emit(f"eof:{len(data)}")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
