#!/usr/bin/env python3
"""
Sample long-running worker.

Simulates a batch step that reacts to SIGINT by finishing its current unit
of work and exiting, or that ignores SIGINT entirely.
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import time
from pathlib import Path
from types import FrameType
from typing import Optional


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Long-running demo worker for interrupt handling.")
    parser.add_argument("--ready-file", help="Written with the worker pid once signal handling is set up")
    parser.add_argument("--run-seconds", type=float, default=3600.0)
    parser.add_argument("--grace-seconds", type=float, default=0.0, help="Delay between SIGINT and exit")
    parser.add_argument("--ignore-interrupt", action="store_true")
    parser.add_argument("--exit-code", type=int, default=0)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    interrupted = False

    def on_interrupt(signum: int, frame: Optional[FrameType]) -> None:
        nonlocal interrupted
        interrupted = True

    signal.signal(signal.SIGINT, signal.SIG_IGN if args.ignore_interrupt else on_interrupt)

    if args.ready_file:
        ready = Path(args.ready_file)
        staging = ready.with_suffix(".tmp")
        staging.write_text(str(os.getpid()), encoding="utf-8")
        staging.replace(ready)

    deadline = time.monotonic() + args.run_seconds
    while time.monotonic() < deadline and not interrupted:
        time.sleep(0.05)

    if interrupted:
        print(f"Interrupted; finishing up in {args.grace_seconds:.1f}s")
        sys.stdout.flush()
        time.sleep(args.grace_seconds)
    return args.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
