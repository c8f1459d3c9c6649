"""
Daemon that judges queued submissions against the remote sandbox.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bytebattle.worker import process_next, run_loop

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Byte&Battle judge worker")
    parser.add_argument(
        "--poll-interval-seconds",
        type=float,
        default=2.0,
        help="Seconds to wait on an empty queue before polling again",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Judge at most one pending submission and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if args.once:
        processed = process_next(block=False)
        logger.info("Processed a submission" if processed else "No pending submissions")
        return 0

    logger.info("Starting judge loop (poll every %.1fs)", args.poll_interval_seconds)
    run_loop(poll_interval_seconds=args.poll_interval_seconds)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
