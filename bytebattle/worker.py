"""
Judge worker: pulls queued submissions, runs them against the problem's
test cases on the remote sandbox and stores the verdict.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Optional

from bytebattle import service
from bytebattle.dependencies import get_db_client, get_queue_client
from bytebattle.queue import JobQueue
from bytebattle.types import SubmissionStatus

logger = logging.getLogger(__name__)


def process_submission(submission_id: str) -> bool:
    """
    Judge one submission. Returns True when a verdict was stored; on failure
    the submission is marked ``error`` so it does not stay in ``judging``.
    """
    result = asyncio.run(service.judge_submission(submission_id))
    if result.ok:
        return True

    logger.error("[%s] Judging failed: %s", submission_id, result.error)
    try:
        get_db_client().update_submission(
            submission_id,
            {
                "status": SubmissionStatus.ERROR.value,
                "error_message": str(result.error),
            },
        )
    except Exception:
        logger.exception("[%s] Failed to record judging error", submission_id)
    return False


def process_next(
    *,
    queue: Optional[JobQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and judge one submission from the queue (or DB fallback). Returns True if one was processed.
    """
    db = get_db_client()
    queue = queue or get_queue_client()

    submission_id = queue.dequeue(block=block, timeout=timeout)

    if submission_id:
        submission = db.get_submission(submission_id)
        if not submission:
            logger.warning(
                "Received submission %s from queue but no DB record found", submission_id
            )
            queue.ack(submission_id)
            return False
        if submission["status"] not in (
            SubmissionStatus.PENDING.value,
            SubmissionStatus.JUDGING.value,
        ):
            logger.info(
                "Skipping submission %s in status %s", submission_id, submission["status"]
            )
            queue.ack(submission_id)
            return False
        db.update_submission(submission_id, {"status": SubmissionStatus.JUDGING.value})
        process_submission(submission_id)
        queue.ack(submission_id)
        return True

    # Pick up pending submissions that were never queued.
    submission = db.claim_next_pending_submission()
    if not submission:
        return False
    process_submission(submission["id"])
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Simple polling loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    queue = get_queue_client()
    recovered = queue.recover()
    if recovered:
        logger.info("Requeued %d submissions left unacked by a previous worker", recovered)
    while True:
        try:
            processed = process_next(
                queue=queue, block=True, timeout=max(1, math.ceil(poll_interval_seconds))
            )
        except Exception:
            logger.exception("Judge loop iteration failed")
            processed = False
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
