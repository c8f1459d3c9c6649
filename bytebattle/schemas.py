"""
Pydantic schemas for the Byte&Battle HTTP API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class ProblemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    difficulty: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class ProblemUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    difficulty: Optional[str] = None
    tags: Optional[list[str]] = None


class Problem(BaseModel):
    id: int
    title: str
    description: str = ""
    difficulty: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class CasePayload(BaseModel):
    input: str = ""
    expected_output: str
    is_visible: bool = False
    is_sample: bool = False


class SubmitRequest(BaseModel):
    user_id: str
    problem_id: int
    code: str = Field(..., max_length=65536)
    language: str


class SubmitResponse(BaseModel):
    submission_id: str
    status: str


class ExecuteRequest(BaseModel):
    code: str = Field(..., max_length=65536)
    language: str
    test_cases: list[CasePayload]


class CaseResultModel(BaseModel):
    input: str
    expected: str
    actual: str
    passed: bool
    error: Optional[str] = None
    time: float = 0
    error_source: Optional[str] = None


class ExecutionSummaryModel(BaseModel):
    passed: int
    total: int
    results: list[CaseResultModel]
    execution_time: float
    memory_used: int = 0


class RegisterRequest(BaseModel):
    user_id: str


class LeaderboardEntry(BaseModel):
    id: str
    username: str
    rating: int
    solved_count: int
    streak: int
