import json
import unittest
from unittest.mock import patch

import httpx

from bytebattle.db import InMemoryDbClient
from bytebattle.dependencies import get_db_client
from bytebattle.executor import PistonClient
from bytebattle.queue import InMemoryJobQueue
from bytebattle.types import BackendError
from bytebattle.worker import process_next, run_loop


def echo_piston() -> PistonClient:
    def handler(request):
        stdin = json.loads(request.content)["stdin"]
        return httpx.Response(200, json={"run": {"stdout": stdin, "stderr": "", "time": 2}})

    return PistonClient("https://piston.test/execute", transport=httpx.MockTransport(handler))


class WorkerTests(unittest.TestCase):
    def setUp(self):
        self.db = get_db_client()
        if isinstance(self.db, InMemoryDbClient):
            self.db.reset()
        self.problem = self.db.create_problem({"title": "Echo"})
        self.db.create_test_case(self.problem["id"], {"input": "42", "expected_output": "42"})

    @patch("bytebattle.service.get_execution_client")
    def test_process_next_judges_queued_submission(self, mock_client):
        mock_client.return_value = echo_piston()
        submission = self.db.create_submission("u1", self.problem["id"], "cat", "bash")
        queue = InMemoryJobQueue()
        queue.enqueue(submission["id"])

        processed = process_next(queue=queue, block=False)

        self.assertTrue(processed)
        self.assertEqual(queue.processing, [])
        updated = self.db.get_submission(submission["id"])
        self.assertEqual(updated["status"], "accepted")
        self.assertEqual(updated["test_cases_passed"], 1)
        self.assertEqual(updated["execution_time"], 2)

    @patch("bytebattle.service.get_execution_client")
    def test_recovered_submission_left_judging_is_rejudged(self, mock_client):
        mock_client.return_value = echo_piston()
        submission = self.db.create_submission("u1", self.problem["id"], "cat", "bash")
        self.db.update_submission(submission["id"], {"status": "judging"})
        queue = InMemoryJobQueue(processing=[submission["id"]])

        self.assertEqual(queue.recover(), 1)
        self.assertTrue(process_next(queue=queue, block=False))
        self.assertEqual(self.db.get_submission(submission["id"])["status"], "accepted")

    @patch("bytebattle.service.get_execution_client")
    def test_process_next_claims_unqueued_pending(self, mock_client):
        mock_client.return_value = echo_piston()
        submission = self.db.create_submission("u1", self.problem["id"], "cat", "bash")

        processed = process_next(queue=InMemoryJobQueue(), block=False)

        self.assertTrue(processed)
        self.assertEqual(self.db.get_submission(submission["id"])["status"], "accepted")

    def test_process_next_no_jobs(self):
        processed = process_next(queue=InMemoryJobQueue(), block=False)
        self.assertFalse(processed)

    def test_unknown_queued_submission(self):
        queue = InMemoryJobQueue()
        queue.enqueue("missing")
        with self.assertLogs("bytebattle.worker", level="WARNING"):
            self.assertFalse(process_next(queue=queue, block=False))

    def test_already_judged_submission_is_skipped(self):
        submission = self.db.create_submission("u1", self.problem["id"], "cat", "bash")
        self.db.update_submission(submission["id"], {"status": "accepted"})
        queue = InMemoryJobQueue()
        queue.enqueue(submission["id"])

        self.assertFalse(process_next(queue=queue, block=False))

    @patch("bytebattle.service.get_execution_client")
    def test_judging_failure_marks_submission_error(self, mock_client):
        mock_client.return_value = echo_piston()
        submission = self.db.create_submission("u1", self.problem["id"], "cat", "bash")
        queue = InMemoryJobQueue()
        queue.enqueue(submission["id"])

        with patch.object(
            InMemoryDbClient, "list_test_cases", side_effect=BackendError("database unavailable")
        ):
            with self.assertLogs("bytebattle.worker", level="ERROR"):
                processed = process_next(queue=queue, block=False)

        self.assertTrue(processed)
        updated = self.db.get_submission(submission["id"])
        self.assertEqual(updated["status"], "error")
        self.assertIn("database unavailable", updated["error_message"])


class RunLoopTests(unittest.TestCase):
    @patch("bytebattle.worker.get_queue_client")
    @patch("bytebattle.worker.process_next")
    def test_sub_second_poll_interval_still_times_out(self, mock_process_next, mock_queue):
        mock_queue.return_value = InMemoryJobQueue()
        mock_process_next.side_effect = KeyboardInterrupt

        with self.assertRaises(KeyboardInterrupt):
            run_loop(poll_interval_seconds=0.25)

        self.assertEqual(mock_process_next.call_args.kwargs["timeout"], 1)


if __name__ == "__main__":
    unittest.main()
