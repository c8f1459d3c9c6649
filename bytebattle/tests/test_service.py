import json
import unittest
from unittest.mock import patch

import httpx

from bytebattle import service
from bytebattle.dependencies import (
    get_auth_client,
    get_change_feed,
    get_db_client,
    get_storage_client,
)
from bytebattle.db import InMemoryDbClient
from bytebattle.executor import (
    ERROR_SOURCE_RUN,
    CaseResult,
    ExecutionSummary,
    PistonClient,
)
from bytebattle.types import (
    AuthError,
    DuplicateRecord,
    InvalidRecord,
    RecordNotFound,
    Result,
    SubmissionStatus,
)


def reset_backends():
    db = get_db_client()
    if isinstance(db, InMemoryDbClient):
        db.reset()
    get_auth_client().sign_out()
    get_auth_client().sessions.clear()
    feed = get_change_feed()
    if hasattr(feed, "subscriptions"):
        feed.subscriptions.clear()
    storage = get_storage_client()
    if hasattr(storage, "stored_objects"):
        storage.stored_objects.clear()


def echo_piston(stdout_for=None, compile_stderr=None):
    """Fake Piston that echoes stdin (or a mapped output) as stdout."""

    def handler(request):
        payload = json.loads(request.content)
        if compile_stderr:
            return httpx.Response(200, json={"compile": {"stderr": compile_stderr}})
        stdin = payload["stdin"]
        stdout = stdout_for(stdin) if stdout_for else stdin
        return httpx.Response(200, json={"run": {"stdout": stdout, "stderr": "", "time": 4}})

    return PistonClient("https://piston.test/execute", transport=httpx.MockTransport(handler))


class ResultTests(unittest.TestCase):
    def test_exactly_one_side(self):
        ok = Result.success([1])
        self.assertTrue(ok.ok)
        self.assertEqual(ok.unwrap(), [1])

        failed = Result.failure(RecordNotFound("gone"))
        self.assertFalse(failed.ok)
        self.assertIsNone(failed.data)
        with self.assertRaises(RecordNotFound):
            failed.unwrap()

        with self.assertRaises(ValueError):
            Result(data=1, error=RecordNotFound("x"))


class AuthServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        reset_backends()

    async def test_sign_up_sign_in_sign_out(self):
        signed_up = await service.sign_up("Ada@Example.com", "s3cret!", "ada")
        self.assertTrue(signed_up.ok)
        user = signed_up.data["user"]
        self.assertEqual(user["email"], "ada@example.com")
        self.assertEqual(user["user_metadata"]["username"], "ada")

        profile = await service.get_user_profile(user["id"])
        self.assertEqual(profile.data["username"], "ada")

        await service.sign_out()
        self.assertIsNone(await service.get_current_user())

        signed_in = await service.sign_in("ada@example.com", "s3cret!")
        self.assertTrue(signed_in.ok)
        self.assertTrue(signed_in.data["session"]["access_token"])
        current = await service.get_current_user()
        self.assertEqual(current["id"], user["id"])

        signed_out = await service.sign_out()
        self.assertTrue(signed_out.ok)
        self.assertIsNone(signed_out.data)
        self.assertIsNone(await service.get_current_user())

    async def test_bad_credentials_are_errors(self):
        await service.sign_up("bob@example.com", "hunter22", "bob")

        wrong = await service.sign_in("bob@example.com", "nope-nope")
        self.assertFalse(wrong.ok)
        self.assertIsInstance(wrong.error, AuthError)
        self.assertIsNone(wrong.data)

        unknown = await service.sign_in("eve@example.com", "hunter22")
        self.assertIsInstance(unknown.error, AuthError)

        duplicate = await service.sign_up("bob@example.com", "hunter22", "bob2")
        self.assertIsInstance(duplicate.error, AuthError)

        short = await service.sign_up("carol@example.com", "123", "carol")
        self.assertIsInstance(short.error, AuthError)

    async def test_missing_profile(self):
        result = await service.get_user_profile("missing")
        self.assertIsInstance(result.error, RecordNotFound)


class ProblemServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        reset_backends()

    async def test_problem_crud(self):
        created = await service.create_problem(
            {"title": "Two Sum", "difficulty": "Easy", "tags": ["array"]}
        )
        self.assertTrue(created.ok)
        problem = created.data[0]

        await service.create_problem({"title": "LRU", "difficulty": "Hard", "tags": ["design"]})

        easy = await service.get_problems(difficulty="Easy")
        self.assertEqual([p["title"] for p in easy.data], ["Two Sum"])
        tagged = await service.get_problems(tags=["design"])
        self.assertEqual([p["title"] for p in tagged.data], ["LRU"])
        everything = await service.get_problems()
        self.assertEqual([p["title"] for p in everything.data], ["Two Sum", "LRU"])

        updated = await service.update_problem(problem["id"], {"difficulty": "Medium"})
        self.assertEqual(updated.data[0]["difficulty"], "Medium")
        self.assertEqual((await service.update_problem(999, {"title": "x"})).data, [])

        deleted = await service.delete_problem(problem["id"])
        self.assertTrue(deleted.ok)
        self.assertIsNone(deleted.data)
        missing = await service.get_problem(problem["id"])
        self.assertIsInstance(missing.error, RecordNotFound)

    async def test_invalid_problem_is_error_result(self):
        result = await service.create_problem({"title": "A", "bogus": 1})
        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, InvalidRecord)

    async def test_test_cases_visibility(self):
        problem = (await service.create_problem({"title": "A"})).data[0]
        await service.create_test_case(problem["id"], {"input": "1", "expected_output": "1", "is_sample": True})
        await service.create_test_case(problem["id"], {"input": "2", "expected_output": "2"})

        visible = await service.get_test_cases(problem["id"], visible_only=True)
        everything = await service.get_test_cases(problem["id"])
        self.assertEqual([c["input"] for c in visible.data], ["1"])
        self.assertEqual([c["input"] for c in everything.data], ["1", "2"])


class SubmissionServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        reset_backends()

    async def _setup_problem(self, cases):
        problem = (await service.create_problem({"title": "Double", "difficulty": "Easy"})).data[0]
        for stdin, expected in cases:
            await service.create_test_case(
                problem["id"], {"input": stdin, "expected_output": expected}
            )
        user = (await service.sign_up("judge@example.com", "password", "judge")).data["user"]
        return problem, user

    async def test_submit_and_list(self):
        problem, user = await self._setup_problem([])
        submitted = await service.submit_code(user["id"], problem["id"], "print(1)", "python")
        self.assertEqual(submitted.data[0]["status"], "pending")

        listed = await service.get_user_submissions(user["id"])
        self.assertEqual(len(listed.data), 1)
        self.assertEqual(listed.data[0]["problems"], {"title": "Double", "difficulty": "Easy"})

    async def test_update_submission_status_from_summary(self):
        problem, user = await self._setup_problem([])
        submission = (await service.submit_code(user["id"], problem["id"], "x", "python")).data[0]
        summary = ExecutionSummary.from_results(
            [
                CaseResult(input="1", expected="2", actual="2", passed=True, time=7),
                CaseResult(
                    input="2",
                    expected="4",
                    actual="",
                    passed=False,
                    error="boom",
                    time=9,
                    error_source=ERROR_SOURCE_RUN,
                ),
            ]
        )

        result = await service.update_submission_status(
            submission["id"], SubmissionStatus.RUNTIME_ERROR, summary
        )

        row = result.data[0]
        self.assertEqual(row["status"], "runtime_error")
        self.assertEqual(row["test_cases_passed"], 1)
        self.assertEqual(row["test_cases_total"], 2)
        self.assertEqual(row["execution_time"], 9)
        self.assertEqual(row["memory_used"], 0)
        self.assertEqual(row["error_message"], "boom")

    async def test_update_submission_status_from_mapping(self):
        problem, user = await self._setup_problem([])
        submission = (await service.submit_code(user["id"], problem["id"], "x", "python")).data[0]

        result = await service.update_submission_status(
            submission["id"],
            "accepted",
            {"passed": 3, "total": 3, "execution_time": 12, "memory_used": 0},
        )

        self.assertEqual(result.data[0]["status"], "accepted")
        self.assertIsNone(result.data[0]["error_message"])

        bad = await service.update_submission_status(submission["id"], "great", {})
        self.assertIsInstance(bad.error, InvalidRecord)

    async def test_judge_accepted_bumps_solved_count_once(self):
        problem, user = await self._setup_problem([("3\n", "3\n"), ("5", "5")])
        updates = []
        subscription = service.subscribe_to_leaderboard(updates.append)

        with patch("bytebattle.service.get_execution_client", return_value=echo_piston()):
            for _ in range(2):
                submission = (
                    await service.submit_code(user["id"], problem["id"], "cat", "bash")
                ).data[0]
                judged = await service.judge_submission(submission["id"])
                self.assertTrue(judged.ok)
                self.assertEqual(judged.data["status"], "accepted")

        self.assertEqual(judged.data["summary"]["passed"], 2)
        self.assertEqual(judged.data["submission"]["test_cases_total"], 2)
        profile = (await service.get_user_profile(user["id"])).data
        self.assertEqual(profile["solved_count"], 1)
        self.assertEqual(len(updates), 1)
        self.assertEqual(updates[0].new["solved_count"], 1)
        subscription.unsubscribe()

    async def test_rejudging_accepted_submission_counts_solve_once(self):
        problem, user = await self._setup_problem([("7", "7")])
        submission = (await service.submit_code(user["id"], problem["id"], "cat", "bash")).data[0]

        with patch("bytebattle.service.get_execution_client", return_value=echo_piston()):
            first = await service.judge_submission(submission["id"])
            second = await service.judge_submission(submission["id"])

        self.assertEqual(first.data["status"], "accepted")
        self.assertEqual(second.data["status"], "accepted")
        profile = (await service.get_user_profile(user["id"])).data
        self.assertEqual(profile["solved_count"], 1)

    async def test_judge_wrong_answer_with_compiler_warnings(self):
        problem, user = await self._setup_problem([("1", "2")])
        submission = (await service.submit_code(user["id"], problem["id"], "int x;", "cpp")).data[0]

        def handler(request):
            return httpx.Response(
                200,
                json={
                    "compile": {"stdout": "", "stderr": "warning: unused variable 'x'", "code": 0},
                    "run": {"stdout": "1", "stderr": "", "code": 0, "time": 2},
                },
            )

        client = PistonClient("https://piston.test/execute", transport=httpx.MockTransport(handler))
        with patch("bytebattle.service.get_execution_client", return_value=client):
            judged = await service.judge_submission(submission["id"])

        self.assertEqual(judged.data["status"], "wrong_answer")
        self.assertEqual(
            judged.data["submission"]["error_message"], "warning: unused variable 'x'"
        )

    async def test_judge_wrong_answer(self):
        problem, user = await self._setup_problem([("1", "2")])
        submission = (await service.submit_code(user["id"], problem["id"], "cat", "bash")).data[0]

        with patch("bytebattle.service.get_execution_client", return_value=echo_piston()):
            judged = await service.judge_submission(submission["id"])

        self.assertEqual(judged.data["status"], "wrong_answer")
        self.assertEqual(judged.data["submission"]["test_cases_passed"], 0)

    async def test_judge_compile_error(self):
        problem, user = await self._setup_problem([("1", "1")])
        submission = (await service.submit_code(user["id"], problem["id"], "int main(", "cpp")).data[0]

        client = echo_piston(compile_stderr="error: expected ')'")
        with patch("bytebattle.service.get_execution_client", return_value=client):
            judged = await service.judge_submission(submission["id"])

        self.assertEqual(judged.data["status"], "compile_error")
        self.assertEqual(judged.data["submission"]["error_message"], "error: expected ')'")

    async def test_judge_without_test_cases(self):
        problem, user = await self._setup_problem([])
        submission = (await service.submit_code(user["id"], problem["id"], "x", "python")).data[0]

        with patch("bytebattle.service.get_execution_client", return_value=echo_piston()):
            judged = await service.judge_submission(submission["id"])

        self.assertEqual(judged.data["status"], "error")
        self.assertEqual(judged.data["submission"]["error_message"], service.NO_TEST_CASES_MESSAGE)
        self.assertEqual(judged.data["submission"]["execution_time"], 0)

    async def test_judge_missing_submission(self):
        judged = await service.judge_submission("missing")
        self.assertIsInstance(judged.error, RecordNotFound)

    async def test_execute_code_uses_configured_client(self):
        with patch("bytebattle.service.get_execution_client", return_value=echo_piston()):
            summary = await service.execute_code(
                "cat",
                "bash",
                [{"input": "hello\n", "expected_output": "hello"}],
            )
        self.assertEqual(summary.passed, 1)
        self.assertEqual(summary.execution_time, 4)


class ContestServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        reset_backends()

    async def test_leaderboard(self):
        a = (await service.sign_up("a@example.com", "password", "a")).data["user"]
        b = (await service.sign_up("b@example.com", "password", "b")).data["user"]
        get_db_client().update_profile(b["id"], {"rating": 2000})

        board = await service.get_leaderboard(limit=10)
        self.assertEqual([row["username"] for row in board.data], ["b", "a"])
        self.assertEqual(board.data[1]["id"], a["id"])

    async def test_register_and_subscribe(self):
        db = get_db_client()
        contest = db.create_contest({"title": "Weekly", "status": "running", "start_time": 10.0})
        other = db.create_contest({"title": "Other", "status": "upcoming", "start_time": 20.0})
        user = (await service.sign_up("p@example.com", "password", "pat")).data["user"]

        events = []
        subscription = service.subscribe_to_contest(contest["id"], events.append)
        self.assertEqual(subscription.channel, f"contest:{contest['id']}")

        registered = await service.register_for_contest(contest["id"], user["id"])
        self.assertEqual(registered.data[0]["contest_id"], contest["id"])
        await service.register_for_contest(other["id"], user["id"])

        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].event_type, "INSERT")
        self.assertEqual(events[0].new["user_id"], user["id"])

        again = await service.register_for_contest(contest["id"], user["id"])
        self.assertIsInstance(again.error, DuplicateRecord)

        board = await service.get_contest_leaderboard(contest["id"])
        self.assertEqual(board.data[0]["profiles"], {"username": "pat"})

        contests = await service.get_contests()
        self.assertEqual([c["title"] for c in contests.data], ["Other", "Weekly"])
        running = await service.get_contests("running")
        self.assertEqual([c["title"] for c in running.data], ["Weekly"])
        self.assertEqual((await service.get_contest(contest["id"])).data["title"], "Weekly")
        self.assertIsInstance((await service.get_contest(999)).error, RecordNotFound)

        subscription.unsubscribe()
        await service.register_for_contest(contest["id"], "someone-else")
        self.assertEqual(len(events), 1)


class StorageServiceTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        reset_backends()

    async def test_upload_avatar_upserts(self):
        first = await service.upload_avatar("u1", "me.png", b"one")
        second = await service.upload_avatar("u1", "me.png", b"two")

        self.assertTrue(second.ok)
        self.assertTrue(first.data["url"].endswith("avatars/u1.png"))
        storage = get_storage_client()
        self.assertEqual(storage.get_bytes("avatars/u1.png"), b"two")


if __name__ == "__main__":
    unittest.main()
