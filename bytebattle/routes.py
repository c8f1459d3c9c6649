"""
HTTP routes for the Byte&Battle API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from bytebattle import service
from bytebattle.dependencies import get_queue_client
from bytebattle.queue import JobQueue
from bytebattle.schemas import (
    CasePayload,
    ExecuteRequest,
    ExecutionSummaryModel,
    LeaderboardEntry,
    Problem,
    ProblemCreate,
    ProblemUpdate,
    RegisterRequest,
    SubmitRequest,
    SubmitResponse,
)
from bytebattle.types import (
    AuthError,
    DuplicateRecord,
    RecordNotFound,
    Result,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _unwrap(result: Result):
    """Return the result's data or raise the matching HTTP error."""
    if result.ok:
        return result.data
    error = result.error
    if isinstance(error, RecordNotFound):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, DuplicateRecord):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, AuthError):
        raise HTTPException(status_code=401, detail=str(error))
    raise HTTPException(status_code=400, detail=str(error))


@router.get("/problems", response_model=list[Problem])
async def list_problems(
    difficulty: Optional[str] = Query(None),
    tags: Optional[str] = Query(None, description="Comma-separated tags"),
):
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    return _unwrap(await service.get_problems(difficulty=difficulty, tags=tag_list))


@router.post("/problems", response_model=Problem, status_code=201)
async def create_problem(payload: ProblemCreate):
    rows = _unwrap(await service.create_problem(payload.model_dump()))
    return rows[0]


@router.get("/problems/{problem_id}", response_model=Problem)
async def get_problem(problem_id: int):
    return _unwrap(await service.get_problem(problem_id))


@router.patch("/problems/{problem_id}", response_model=Problem)
async def update_problem(problem_id: int, payload: ProblemUpdate):
    rows = _unwrap(
        await service.update_problem(problem_id, payload.model_dump(exclude_unset=True))
    )
    if not rows:
        raise HTTPException(status_code=404, detail="Problem not found")
    return rows[0]


@router.delete("/problems/{problem_id}", status_code=204)
async def delete_problem(problem_id: int):
    _unwrap(await service.delete_problem(problem_id))


@router.get("/problems/{problem_id}/test-cases")
async def list_test_cases(problem_id: int, visible_only: bool = Query(True)):
    return _unwrap(await service.get_test_cases(problem_id, visible_only))


@router.post("/problems/{problem_id}/test-cases", status_code=201)
async def create_test_case(problem_id: int, payload: CasePayload):
    _unwrap(await service.get_problem(problem_id))
    rows = _unwrap(await service.create_test_case(problem_id, payload.model_dump()))
    return rows[0]


@router.post("/submissions", response_model=SubmitResponse, status_code=202)
async def submit(payload: SubmitRequest, queue: JobQueue = Depends(get_queue_client)):
    """
    Store the submission and enqueue it; a judge worker picks it up.
    """
    _unwrap(await service.get_problem(payload.problem_id))
    rows = _unwrap(
        await service.submit_code(
            payload.user_id, payload.problem_id, payload.code, payload.language
        )
    )
    submission = rows[0]
    queue.enqueue(submission["id"])
    logger.info("Queued submission %s", submission["id"])
    return SubmitResponse(submission_id=submission["id"], status=submission["status"])


@router.get("/users/{user_id}/submissions")
async def list_user_submissions(user_id: str, limit: int = Query(50, ge=1, le=500)):
    return _unwrap(await service.get_user_submissions(user_id, limit))


@router.get("/users/{user_id}/profile")
async def get_profile(user_id: str):
    return _unwrap(await service.get_user_profile(user_id))


@router.post("/execute", response_model=ExecutionSummaryModel)
async def execute(payload: ExecuteRequest):
    summary = await service.execute_code(
        payload.code,
        payload.language,
        [case.model_dump() for case in payload.test_cases],
    )
    return summary.as_dict()


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(limit: int = Query(100, ge=1, le=1000)):
    return _unwrap(await service.get_leaderboard(limit))


@router.get("/contests")
async def list_contests(status: Optional[str] = Query(None)):
    return _unwrap(await service.get_contests(status))


@router.get("/contests/{contest_id}")
async def get_contest(contest_id: int):
    return _unwrap(await service.get_contest(contest_id))


@router.post("/contests/{contest_id}/register", status_code=201)
async def register(contest_id: int, payload: RegisterRequest):
    _unwrap(await service.get_contest(contest_id))
    rows = _unwrap(await service.register_for_contest(contest_id, payload.user_id))
    return rows[0]


@router.get("/contests/{contest_id}/leaderboard")
async def contest_leaderboard(contest_id: int):
    return _unwrap(await service.get_contest_leaderboard(contest_id))
