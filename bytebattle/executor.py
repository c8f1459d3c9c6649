"""
Runs submitted code against test cases on a remote Piston sandbox and
aggregates the per-case outcomes into an execution summary.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, Optional, Sequence

import httpx

from bytebattle.types import ExecutionServiceError

logger = logging.getLogger(__name__)

DEFAULT_PISTON_URL = "https://emkc.org/api/v2/piston/execute"
COMPILE_TIMEOUT_MS = 10000
RUN_TIMEOUT_MS = 3000
REQUEST_TIMEOUT_SECONDS = 30.0

ERROR_SOURCE_COMPILE = "compile"
ERROR_SOURCE_RUN = "run"
ERROR_SOURCE_TRANSPORT = "transport"


@dataclass(frozen=True)
class TestCase:
    __test__ = False

    input: str
    expected_output: str
    is_visible: bool = False
    is_sample: bool = False

    @classmethod
    def from_row(cls, row: dict) -> "TestCase":
        return cls(
            input=row.get("input") or "",
            expected_output=row.get("expected_output") or "",
            is_visible=bool(row.get("is_visible", False)),
            is_sample=bool(row.get("is_sample", False)),
        )


@dataclass(frozen=True)
class CaseResult:
    input: str
    expected: str
    actual: str
    passed: bool
    error: Optional[str] = None
    time: float = 0
    # Where ``error`` came from: compile, run or transport (None when clean).
    error_source: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ExecutionSummary:
    passed: int
    total: int
    results: list[CaseResult] = field(default_factory=list)
    execution_time: float = 0
    memory_used: int = 0

    @classmethod
    def from_results(cls, results: Iterable[CaseResult]) -> "ExecutionSummary":
        results = list(results)
        return cls(
            passed=sum(1 for r in results if r.passed),
            total=len(results),
            results=results,
            execution_time=max((r.time for r in results), default=0),
            # Piston does not report memory usage.
            memory_used=0,
        )

    @property
    def first_error(self) -> Optional[str]:
        for result in self.results:
            if result.error:
                return result.error
        return None

    def as_dict(self) -> dict:
        return {
            "passed": self.passed,
            "total": self.total,
            "results": [r.as_dict() for r in self.results],
            "execution_time": self.execution_time,
            "memory_used": self.memory_used,
        }


class PistonClient:
    """Thin client for Piston's ``/execute`` endpoint."""

    def __init__(
        self,
        url: str = DEFAULT_PISTON_URL,
        *,
        compile_timeout_ms: int = COMPILE_TIMEOUT_MS,
        run_timeout_ms: int = RUN_TIMEOUT_MS,
        request_timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.compile_timeout_ms = compile_timeout_ms
        self.run_timeout_ms = run_timeout_ms
        self.request_timeout = request_timeout
        self.transport = transport

    def open(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.request_timeout, transport=self.transport)

    def build_payload(self, code: str, language: str, stdin: str) -> dict:
        return {
            "language": language,
            "version": "*",
            "files": [{"content": code}],
            "stdin": stdin,
            "compile_timeout": self.compile_timeout_ms,
            "run_timeout": self.run_timeout_ms,
        }

    async def run(
        self, http: httpx.AsyncClient, *, code: str, language: str, stdin: str
    ) -> dict:
        response = await http.post(self.url, json=self.build_payload(code, language, stdin))
        if response.status_code >= 400:
            try:
                detail = response.json()
            except ValueError:
                detail = None
            message = detail.get("message") if isinstance(detail, dict) else None
            raise ExecutionServiceError(
                f"execution service returned {response.status_code}: "
                f"{message or response.text or response.reason_phrase}"
            )
        body = response.json()
        if not isinstance(body, dict):
            raise ExecutionServiceError("execution service returned a non-object body")
        return body


def _stage(body: dict, name: str) -> dict:
    stage = body.get(name)
    return stage if isinstance(stage, dict) else {}


def _text(stage: dict, key: str) -> str:
    value = stage.get(key)
    return value if isinstance(value, str) else ""


def _stage_failed(stage: dict) -> bool:
    return bool(stage.get("signal")) or stage.get("code") not in (None, 0)


def case_result_from_response(test_case: TestCase, body: dict) -> CaseResult:
    """
    Turn one Piston response into a CaseResult. Fields of the wrong type
    read as empty. Compiler warnings on a successful build keep their text
    in ``error`` but are not a compile failure.
    """
    run = _stage(body, "run")
    compile_stage = _stage(body, "compile")
    actual = _text(run, "stdout").strip()
    run_stderr = _text(run, "stderr")
    compile_stderr = _text(compile_stage, "stderr")
    elapsed = run.get("time")
    if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
        elapsed = 0

    error = run_stderr or compile_stderr or None
    if compile_stage and (_stage_failed(compile_stage) or not run):
        error_source = ERROR_SOURCE_COMPILE
    elif run_stderr or _stage_failed(run):
        error_source = ERROR_SOURCE_RUN
    else:
        error_source = None

    return CaseResult(
        input=test_case.input,
        expected=test_case.expected_output,
        actual=actual,
        passed=actual == test_case.expected_output.strip(),
        error=error,
        time=elapsed,
        error_source=error_source,
    )


async def _run_case(
    client: PistonClient,
    http: httpx.AsyncClient,
    code: str,
    language: str,
    test_case: TestCase,
) -> CaseResult:
    try:
        body = await client.run(http, code=code, language=language, stdin=test_case.input)
        return case_result_from_response(test_case, body)
    except Exception as exc:
        logger.warning("Test case execution failed: %s", exc)
        return CaseResult(
            input=test_case.input,
            expected=test_case.expected_output,
            actual="",
            passed=False,
            error=str(exc) or exc.__class__.__name__,
            time=0,
            error_source=ERROR_SOURCE_TRANSPORT,
        )


async def execute(
    code: str,
    language: str,
    test_cases: Sequence[TestCase],
    *,
    client: Optional[PistonClient] = None,
    max_concurrency: int = 1,
) -> ExecutionSummary:
    """
    Run ``code`` once per test case and summarize the outcomes.

    Cases run one after another unless ``max_concurrency`` > 1, in which case
    at most that many requests are in flight. Either way the results keep
    the order of ``test_cases`` and a failing case never aborts the batch.
    """
    client = client or PistonClient()
    cases = [tc if isinstance(tc, TestCase) else TestCase.from_row(tc) for tc in test_cases]

    async with client.open() as http:
        if max_concurrency <= 1:
            results = []
            for test_case in cases:
                results.append(await _run_case(client, http, code, language, test_case))
        else:
            semaphore = asyncio.Semaphore(max_concurrency)

            async def bounded(test_case: TestCase) -> CaseResult:
                async with semaphore:
                    return await _run_case(client, http, code, language, test_case)

            results = await asyncio.gather(*(bounded(tc) for tc in cases))

    summary = ExecutionSummary.from_results(results)
    logger.info(
        "Executed %s submission: %d/%d passed", language, summary.passed, summary.total
    )
    return summary
