"""
Async service layer: the operations the web client and the worker call.

Every data operation returns a ``Result``; client failures are reported in
``Result.error`` and never raised. Blocking client calls run in the
threadpool so the event loop stays free.
"""

from __future__ import annotations

import functools
import logging
import mimetypes
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from bytebattle.config import get_settings
from bytebattle.dependencies import (
    get_auth_client,
    get_change_feed,
    get_db_client,
    get_execution_client,
    get_storage_client,
)
from bytebattle.executor import (
    ERROR_SOURCE_COMPILE,
    ERROR_SOURCE_RUN,
    ERROR_SOURCE_TRANSPORT,
    ExecutionSummary,
    TestCase,
    execute,
)
from bytebattle.realtime import Binding, ChangeCallback, Subscription
from bytebattle.types import (
    BackendError,
    InvalidRecord,
    RecordNotFound,
    Result,
    SubmissionStatus,
)

logger = logging.getLogger(__name__)

AVATAR_PREFIX = "avatars"
NO_TEST_CASES_MESSAGE = "problem has no test cases"

CLIENT_ERRORS = (BackendError, SQLAlchemyError, BotoCoreError, ClientError, RedisError)


def returns_result(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Result]]:
    """Wrap an async operation so client failures come back as ``Result.error``."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> Result:
        try:
            data = await func(*args, **kwargs)
        except CLIENT_ERRORS as exc:
            logger.warning("%s failed: %s", func.__name__, exc)
            if isinstance(exc, BackendError):
                return Result.failure(exc)
            error = BackendError(str(exc))
            error.__cause__ = exc
            return Result.failure(error)
        return Result.success(data)

    return wrapper


# ==================================================
# Auth
# ==================================================


@returns_result
async def sign_up(email: str, password: str, username: str):
    return await run_in_threadpool(get_auth_client().sign_up, email, password, username)


@returns_result
async def sign_in(email: str, password: str):
    return await run_in_threadpool(get_auth_client().sign_in, email, password)


@returns_result
async def sign_out(access_token: Optional[str] = None):
    get_auth_client().sign_out(access_token)
    return None


async def get_current_user(access_token: Optional[str] = None) -> Optional[dict]:
    return get_auth_client().get_current_user(access_token)


@returns_result
async def get_user_profile(user_id: str):
    profile = await run_in_threadpool(get_db_client().get_profile, user_id)
    if profile is None:
        raise RecordNotFound(f"profile not found: {user_id}")
    return profile


# ==================================================
# Problems
# ==================================================


@returns_result
async def get_problems(
    difficulty: Optional[str] = None, tags: Optional[Sequence[str]] = None
):
    return await run_in_threadpool(
        get_db_client().list_problems,
        difficulty=difficulty,
        tags=list(tags) if tags else None,
    )


@returns_result
async def get_problem(problem_id: int):
    problem = await run_in_threadpool(get_db_client().get_problem, problem_id)
    if problem is None:
        raise RecordNotFound(f"problem not found: {problem_id}")
    return problem


@returns_result
async def get_test_cases(problem_id: int, visible_only: bool = False):
    return await run_in_threadpool(
        get_db_client().list_test_cases, problem_id, visible_only
    )


@returns_result
async def create_problem(problem_data: dict):
    row = await run_in_threadpool(get_db_client().create_problem, problem_data)
    return [row]


@returns_result
async def update_problem(problem_id: int, updates: dict):
    row = await run_in_threadpool(get_db_client().update_problem, problem_id, updates)
    return [row] if row else []


@returns_result
async def delete_problem(problem_id: int):
    await run_in_threadpool(get_db_client().delete_problem, problem_id)
    return None


@returns_result
async def create_test_case(problem_id: int, test_case_data: dict):
    row = await run_in_threadpool(
        get_db_client().create_test_case, problem_id, test_case_data
    )
    return [row]


# ==================================================
# Submissions
# ==================================================


@returns_result
async def submit_code(user_id: str, problem_id: int, code: str, language: str):
    row = await run_in_threadpool(
        get_db_client().create_submission, user_id, problem_id, code, language
    )
    return [row]


@returns_result
async def get_user_submissions(user_id: str, limit: int = 50):
    return await run_in_threadpool(get_db_client().list_user_submissions, user_id, limit)


def _status_updates(
    status: Union[str, SubmissionStatus],
    results: Union[ExecutionSummary, Mapping],
) -> dict:
    try:
        status_value = SubmissionStatus(status).value
    except ValueError as exc:
        raise InvalidRecord(f"unknown submission status: {status}") from exc
    if isinstance(results, ExecutionSummary):
        return {
            "status": status_value,
            "execution_time": results.execution_time,
            "memory_used": results.memory_used,
            "test_cases_passed": results.passed,
            "test_cases_total": results.total,
            "error_message": results.first_error,
        }
    return {
        "status": status_value,
        "execution_time": results.get("execution_time"),
        "memory_used": results.get("memory_used"),
        "test_cases_passed": results.get("passed"),
        "test_cases_total": results.get("total"),
        "error_message": results.get("error"),
    }


@returns_result
async def update_submission_status(
    submission_id: str,
    status: Union[str, SubmissionStatus],
    results: Union[ExecutionSummary, Mapping],
):
    row = await run_in_threadpool(
        get_db_client().update_submission,
        submission_id,
        _status_updates(status, results),
    )
    return [row] if row else []


# ==================================================
# Leaderboard
# ==================================================


@returns_result
async def get_leaderboard(limit: int = 100):
    return await run_in_threadpool(get_db_client().list_leaderboard, limit)


# ==================================================
# Contests
# ==================================================


@returns_result
async def get_contests(status: Optional[str] = None):
    return await run_in_threadpool(get_db_client().list_contests, status)


@returns_result
async def get_contest(contest_id: int):
    contest = await run_in_threadpool(get_db_client().get_contest, contest_id)
    if contest is None:
        raise RecordNotFound(f"contest not found: {contest_id}")
    return contest


@returns_result
async def register_for_contest(contest_id: int, user_id: str):
    row = await run_in_threadpool(
        get_db_client().add_contest_participant, contest_id, user_id
    )
    return [row]


@returns_result
async def get_contest_leaderboard(contest_id: int):
    return await run_in_threadpool(
        get_db_client().list_contest_participants, contest_id
    )


# ==================================================
# Realtime subscriptions
# ==================================================


def subscribe_to_contest(contest_id: int, callback: ChangeCallback) -> Subscription:
    binding = Binding(
        table="contest_participants",
        event="*",
        filter=f"contest_id=eq.{contest_id}",
    )
    return get_change_feed().subscribe(f"contest:{contest_id}", binding, callback)


def subscribe_to_leaderboard(callback: ChangeCallback) -> Subscription:
    binding = Binding(table="profiles", event="UPDATE")
    return get_change_feed().subscribe("leaderboard", binding, callback)


# ==================================================
# Code execution
# ==================================================


async def execute_code(
    code: str,
    language: str,
    test_cases: Sequence[Union[TestCase, Mapping]],
    *,
    max_concurrency: Optional[int] = None,
) -> ExecutionSummary:
    """Run ``code`` against ``test_cases`` on the remote sandbox; never raises per case."""
    if max_concurrency is None:
        max_concurrency = get_settings().execution_max_concurrency
    return await execute(
        code,
        language,
        test_cases,
        client=get_execution_client(),
        max_concurrency=max_concurrency,
    )


def verdict_for(summary: ExecutionSummary) -> SubmissionStatus:
    if summary.total == 0:
        return SubmissionStatus.ERROR
    if summary.passed == summary.total:
        return SubmissionStatus.ACCEPTED
    sources = {r.error_source for r in summary.results if not r.passed}
    if ERROR_SOURCE_COMPILE in sources:
        return SubmissionStatus.COMPILE_ERROR
    if ERROR_SOURCE_TRANSPORT in sources:
        return SubmissionStatus.ERROR
    if ERROR_SOURCE_RUN in sources:
        return SubmissionStatus.RUNTIME_ERROR
    return SubmissionStatus.WRONG_ANSWER


@returns_result
async def judge_submission(submission_id: str, *, max_concurrency: Optional[int] = None):
    """
    Judge a stored submission against all of its problem's test cases and
    persist the verdict. A first accepted solve bumps the user's solved count.
    """
    db = get_db_client()
    submission = await run_in_threadpool(db.get_submission, submission_id)
    if submission is None:
        raise RecordNotFound(f"submission not found: {submission_id}")

    rows = await run_in_threadpool(db.list_test_cases, submission["problem_id"])
    summary = await execute_code(
        submission["code"],
        submission["language"],
        [TestCase.from_row(row) for row in rows],
        max_concurrency=max_concurrency,
    )
    status = verdict_for(summary)
    updates = _status_updates(status, summary)
    if summary.total == 0:
        updates["error_message"] = NO_TEST_CASES_MESSAGE
    updated = await run_in_threadpool(db.update_submission, submission_id, updates)
    logger.info(
        "[%s] Judged as %s (%d/%d)",
        submission_id,
        status.value,
        summary.passed,
        summary.total,
    )

    # A re-judge of an already accepted submission must not count the solve again.
    already_accepted = submission["status"] == SubmissionStatus.ACCEPTED.value
    if status is SubmissionStatus.ACCEPTED and not already_accepted:
        accepted = await run_in_threadpool(
            db.count_accepted_submissions,
            submission["user_id"],
            submission["problem_id"],
        )
        if accepted == 1:
            profile = await run_in_threadpool(db.get_profile, submission["user_id"])
            if profile:
                await run_in_threadpool(
                    db.update_profile,
                    submission["user_id"],
                    {"solved_count": profile["solved_count"] + 1},
                )

    return {"submission": updated, "status": status.value, "summary": summary.as_dict()}


# ==================================================
# Storage
# ==================================================


@returns_result
async def upload_avatar(
    user_id: str, filename: str, content: bytes, content_type: Optional[str] = None
):
    extension = filename.split(".")[-1]
    path = f"{AVATAR_PREFIX}/{user_id}.{extension}"
    content_type = (
        content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    )
    storage = get_storage_client()
    await run_in_threadpool(
        storage.upload_bytes, path, content, content_type, True
    )
    return {"url": storage.get_public_url(path)}
