"""
Database abstraction for Postgres and an in-memory test implementation.

Rows are exchanged as plain dicts. Writes to ``profiles`` and
``contest_participants`` publish change events on the configured feed.
"""

from __future__ import annotations

import copy
import time
import uuid
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from bytebattle.realtime import ChangeEvent, ChangeFeed
from bytebattle.types import DuplicateRecord, InvalidRecord, SubmissionStatus

PROBLEM_COLUMNS = ("title", "description", "difficulty", "tags")
TEST_CASE_COLUMNS = ("input", "expected_output", "is_visible", "is_sample")
CONTEST_COLUMNS = ("title", "description", "status", "start_time", "end_time")
PROFILE_COLUMNS = ("username", "rating", "solved_count", "streak", "avatar_url")
SUBMISSION_UPDATE_COLUMNS = (
    "status",
    "execution_time",
    "memory_used",
    "test_cases_passed",
    "test_cases_total",
    "error_message",
)
LEADERBOARD_COLUMNS = ("id", "username", "rating", "solved_count", "streak")


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(self, email: str, password_hash: str, username: str) -> dict:
        ...

    def get_user(self, user_id: str) -> Optional[dict]:
        ...

    def get_user_by_email(self, email: str) -> Optional[dict]:
        ...

    def get_profile(self, user_id: str) -> Optional[dict]:
        ...

    def update_profile(self, user_id: str, updates: dict) -> Optional[dict]:
        ...

    def list_leaderboard(self, limit: int = 100) -> list[dict]:
        ...

    def list_problems(
        self, *, difficulty: Optional[str] = None, tags: Optional[list[str]] = None
    ) -> list[dict]:
        ...

    def get_problem(self, problem_id: int) -> Optional[dict]:
        ...

    def create_problem(self, data: dict) -> dict:
        ...

    def update_problem(self, problem_id: int, updates: dict) -> Optional[dict]:
        ...

    def delete_problem(self, problem_id: int) -> bool:
        ...

    def create_test_case(self, problem_id: int, data: dict) -> dict:
        ...

    def list_test_cases(
        self, problem_id: int, visible_only: bool = False
    ) -> list[dict]:
        ...

    def create_submission(
        self, user_id: str, problem_id: int, code: str, language: str
    ) -> dict:
        ...

    def get_submission(self, submission_id: str) -> Optional[dict]:
        ...

    def list_user_submissions(self, user_id: str, limit: int = 50) -> list[dict]:
        ...

    def update_submission(self, submission_id: str, updates: dict) -> Optional[dict]:
        ...

    def count_accepted_submissions(self, user_id: str, problem_id: int) -> int:
        ...

    def claim_next_pending_submission(self) -> Optional[dict]:
        ...

    def create_contest(self, data: dict) -> dict:
        ...

    def list_contests(self, status: Optional[str] = None) -> list[dict]:
        ...

    def get_contest(self, contest_id: int) -> Optional[dict]:
        ...

    def add_contest_participant(self, contest_id: int, user_id: str) -> dict:
        ...

    def list_contest_participants(self, contest_id: int) -> list[dict]:
        ...


def _check_columns(data: dict, allowed: Iterable[str], table: str) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise InvalidRecord(f"unknown column(s) for {table}: {', '.join(unknown)}")


def _has_tags(row_tags: Optional[list], wanted: Optional[list[str]]) -> bool:
    if not wanted:
        return True
    return set(wanted).issubset(set(row_tags or []))


def _public_user(user: dict) -> dict:
    return {
        "id": user["id"],
        "email": user["email"],
        "user_metadata": {"username": user["username"]},
        "created_at": user["created_at"],
    }


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed
        self.users: Dict[str, dict] = {}
        self.profiles: Dict[str, dict] = {}
        self.problems: Dict[int, dict] = {}
        self.test_cases: Dict[int, dict] = {}
        self.submissions: Dict[str, dict] = {}
        self.contests: Dict[int, dict] = {}
        self.participants: Dict[int, dict] = {}
        self._next_ids: Dict[str, int] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.profiles.clear()
        self.problems.clear()
        self.test_cases.clear()
        self.submissions.clear()
        self.contests.clear()
        self.participants.clear()
        self._next_ids.clear()

    def _next_id(self, table: str) -> int:
        value = self._next_ids.get(table, 0) + 1
        self._next_ids[table] = value
        return value

    def _publish(self, table: str, event_type: str, new=None, old=None) -> None:
        if self.feed is not None:
            self.feed.publish(
                ChangeEvent(
                    table=table,
                    event_type=event_type,
                    new=copy.deepcopy(new),
                    old=copy.deepcopy(old),
                )
            )

    def create_user(self, email: str, password_hash: str, username: str) -> dict:
        if self.get_user_by_email(email):
            raise DuplicateRecord(f"user already registered: {email}")
        now = time.time()
        user = {
            "id": uuid.uuid4().hex,
            "email": email,
            "username": username,
            "password_hash": password_hash,
            "created_at": now,
        }
        profile = {
            "id": user["id"],
            "username": username,
            "rating": 0,
            "solved_count": 0,
            "streak": 0,
            "avatar_url": None,
            "created_at": now,
        }
        self.users[user["id"]] = user
        self.profiles[user["id"]] = profile
        self._publish("profiles", "INSERT", new=profile)
        return _public_user(user)

    def get_user(self, user_id: str) -> Optional[dict]:
        user = self.users.get(user_id)
        return _public_user(user) if user else None

    def get_user_by_email(self, email: str) -> Optional[dict]:
        for user in self.users.values():
            if user["email"] == email:
                return dict(user)
        return None

    def get_profile(self, user_id: str) -> Optional[dict]:
        profile = self.profiles.get(user_id)
        return dict(profile) if profile else None

    def update_profile(self, user_id: str, updates: dict) -> Optional[dict]:
        _check_columns(updates, PROFILE_COLUMNS, "profiles")
        profile = self.profiles.get(user_id)
        if not profile:
            return None
        old = dict(profile)
        profile.update(updates)
        self._publish("profiles", "UPDATE", new=profile, old=old)
        return dict(profile)

    def list_leaderboard(self, limit: int = 100) -> list[dict]:
        rows = sorted(self.profiles.values(), key=lambda p: p["rating"], reverse=True)
        return [{k: row[k] for k in LEADERBOARD_COLUMNS} for row in rows[:limit]]

    def list_problems(
        self, *, difficulty: Optional[str] = None, tags: Optional[list[str]] = None
    ) -> list[dict]:
        rows = []
        for problem_id in sorted(self.problems):
            problem = self.problems[problem_id]
            if difficulty and problem.get("difficulty") != difficulty:
                continue
            if not _has_tags(problem.get("tags"), tags):
                continue
            rows.append(copy.deepcopy(problem))
        return rows

    def get_problem(self, problem_id: int) -> Optional[dict]:
        problem = self.problems.get(problem_id)
        return copy.deepcopy(problem) if problem else None

    def create_problem(self, data: dict) -> dict:
        _check_columns(data, PROBLEM_COLUMNS, "problems")
        if not data.get("title"):
            raise InvalidRecord("problems.title is required")
        problem = {
            "id": self._next_id("problems"),
            "title": data["title"],
            "description": data.get("description", ""),
            "difficulty": data.get("difficulty"),
            "tags": list(data.get("tags") or []),
            "created_at": time.time(),
        }
        self.problems[problem["id"]] = problem
        return copy.deepcopy(problem)

    def update_problem(self, problem_id: int, updates: dict) -> Optional[dict]:
        _check_columns(updates, PROBLEM_COLUMNS, "problems")
        problem = self.problems.get(problem_id)
        if not problem:
            return None
        problem.update(copy.deepcopy(updates))
        return copy.deepcopy(problem)

    def delete_problem(self, problem_id: int) -> bool:
        if self.problems.pop(problem_id, None) is None:
            return False
        for case_id in [
            cid for cid, case in self.test_cases.items() if case["problem_id"] == problem_id
        ]:
            del self.test_cases[case_id]
        return True

    def create_test_case(self, problem_id: int, data: dict) -> dict:
        _check_columns(data, TEST_CASE_COLUMNS, "test_cases")
        case = {
            "id": self._next_id("test_cases"),
            "problem_id": problem_id,
            "input": data.get("input", ""),
            "expected_output": data.get("expected_output", ""),
            "is_visible": bool(data.get("is_visible", False)),
            "is_sample": bool(data.get("is_sample", False)),
        }
        self.test_cases[case["id"]] = case
        return dict(case)

    def list_test_cases(
        self, problem_id: int, visible_only: bool = False
    ) -> list[dict]:
        rows = []
        for case_id in sorted(self.test_cases):
            case = self.test_cases[case_id]
            if case["problem_id"] != problem_id:
                continue
            if visible_only and not (case["is_visible"] or case["is_sample"]):
                continue
            rows.append(dict(case))
        return rows

    def create_submission(
        self, user_id: str, problem_id: int, code: str, language: str
    ) -> dict:
        now = time.time()
        submission = {
            "id": uuid.uuid4().hex,
            "user_id": user_id,
            "problem_id": problem_id,
            "code": code,
            "language": language,
            "status": SubmissionStatus.PENDING.value,
            "execution_time": None,
            "memory_used": None,
            "test_cases_passed": None,
            "test_cases_total": None,
            "error_message": None,
            "created_at": now,
            "updated_at": now,
        }
        self.submissions[submission["id"]] = submission
        return dict(submission)

    def get_submission(self, submission_id: str) -> Optional[dict]:
        submission = self.submissions.get(submission_id)
        return dict(submission) if submission else None

    def list_user_submissions(self, user_id: str, limit: int = 50) -> list[dict]:
        mine = [s for s in self.submissions.values() if s["user_id"] == user_id]
        # Newest first; ties keep the most recently inserted first.
        mine = sorted(reversed(mine), key=lambda s: s["created_at"], reverse=True)
        rows = []
        for submission in mine[:limit]:
            row = dict(submission)
            problem = self.problems.get(submission["problem_id"])
            row["problems"] = (
                {"title": problem["title"], "difficulty": problem["difficulty"]}
                if problem
                else None
            )
            rows.append(row)
        return rows

    def update_submission(self, submission_id: str, updates: dict) -> Optional[dict]:
        _check_columns(updates, SUBMISSION_UPDATE_COLUMNS, "submissions")
        submission = self.submissions.get(submission_id)
        if not submission:
            return None
        submission.update(updates)
        submission["updated_at"] = time.time()
        return dict(submission)

    def count_accepted_submissions(self, user_id: str, problem_id: int) -> int:
        return sum(
            1
            for s in self.submissions.values()
            if s["user_id"] == user_id
            and s["problem_id"] == problem_id
            and s["status"] == SubmissionStatus.ACCEPTED.value
        )

    def claim_next_pending_submission(self) -> Optional[dict]:
        for submission in self.submissions.values():
            if submission["status"] == SubmissionStatus.PENDING.value:
                submission["status"] = SubmissionStatus.JUDGING.value
                submission["updated_at"] = time.time()
                return dict(submission)
        return None

    def create_contest(self, data: dict) -> dict:
        _check_columns(data, CONTEST_COLUMNS, "contests")
        contest = {
            "id": self._next_id("contests"),
            "title": data.get("title", ""),
            "description": data.get("description", ""),
            "status": data.get("status", "upcoming"),
            "start_time": data.get("start_time", time.time()),
            "end_time": data.get("end_time"),
        }
        self.contests[contest["id"]] = contest
        return dict(contest)

    def list_contests(self, status: Optional[str] = None) -> list[dict]:
        rows = [
            dict(c)
            for c in self.contests.values()
            if status is None or c["status"] == status
        ]
        return sorted(rows, key=lambda c: c["start_time"], reverse=True)

    def get_contest(self, contest_id: int) -> Optional[dict]:
        contest = self.contests.get(contest_id)
        return dict(contest) if contest else None

    def add_contest_participant(self, contest_id: int, user_id: str) -> dict:
        for row in self.participants.values():
            if row["contest_id"] == contest_id and row["user_id"] == user_id:
                raise DuplicateRecord(
                    f"user {user_id} already registered for contest {contest_id}"
                )
        participant = {
            "id": self._next_id("contest_participants"),
            "contest_id": contest_id,
            "user_id": user_id,
            "score": 0,
            "joined_at": time.time(),
        }
        self.participants[participant["id"]] = participant
        self._publish("contest_participants", "INSERT", new=participant)
        return dict(participant)

    def list_contest_participants(self, contest_id: int) -> list[dict]:
        rows = []
        for participant in self.participants.values():
            if participant["contest_id"] != contest_id:
                continue
            row = dict(participant)
            profile = self.profiles.get(participant["user_id"])
            row["profiles"] = {"username": profile["username"]} if profile else None
            rows.append(row)
        return sorted(rows, key=lambda r: r["score"], reverse=True)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str, feed: Optional[ChangeFeed] = None):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.feed = feed
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _publish(self, table: str, event_type: str, new=None, old=None) -> None:
        if self.feed is not None:
            self.feed.publish(
                ChangeEvent(table=table, event_type=event_type, new=new, old=old)
            )

    def create_user(self, email: str, password_hash: str, username: str) -> dict:
        now = time.time()
        user_id = uuid.uuid4().hex
        with self.Session() as session:
            user = UserRow(
                id=user_id,
                email=email,
                username=username,
                password_hash=password_hash,
                created_at=now,
            )
            profile = ProfileRow(
                id=user_id,
                username=username,
                rating=0,
                solved_count=0,
                streak=0,
                created_at=now,
            )
            session.add(user)
            session.add(profile)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecord(f"user already registered: {email}") from exc
            record = _user_to_dict(user)
            profile_dict = _profile_to_dict(profile)
        self._publish("profiles", "INSERT", new=profile_dict)
        return _public_user(record)

    def get_user(self, user_id: str) -> Optional[dict]:
        with self.Session() as session:
            user = session.get(UserRow, user_id)
            return _public_user(_user_to_dict(user)) if user else None

    def get_user_by_email(self, email: str) -> Optional[dict]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == email)
            user = session.execute(stmt).scalar_one_or_none()
            return _user_to_dict(user) if user else None

    def get_profile(self, user_id: str) -> Optional[dict]:
        with self.Session() as session:
            profile = session.get(ProfileRow, user_id)
            return _profile_to_dict(profile) if profile else None

    def update_profile(self, user_id: str, updates: dict) -> Optional[dict]:
        _check_columns(updates, PROFILE_COLUMNS, "profiles")
        with self.Session() as session:
            profile = session.get(ProfileRow, user_id)
            if not profile:
                return None
            old = _profile_to_dict(profile)
            for key, value in updates.items():
                setattr(profile, key, value)
            session.commit()
            new = _profile_to_dict(profile)
        self._publish("profiles", "UPDATE", new=new, old=old)
        return new

    def list_leaderboard(self, limit: int = 100) -> list[dict]:
        with self.Session() as session:
            rows = (
                session.query(ProfileRow)
                .order_by(ProfileRow.rating.desc())
                .limit(limit)
                .all()
            )
            return [
                {k: v for k, v in _profile_to_dict(row).items() if k in LEADERBOARD_COLUMNS}
                for row in rows
            ]

    def list_problems(
        self, *, difficulty: Optional[str] = None, tags: Optional[list[str]] = None
    ) -> list[dict]:
        with self.Session() as session:
            query = session.query(ProblemRow).order_by(ProblemRow.id.asc())
            if difficulty:
                query = query.filter(ProblemRow.difficulty == difficulty)
            # Tag containment is checked in Python.
            return [
                _problem_to_dict(row)
                for row in query.all()
                if _has_tags(row.tags, tags)
            ]

    def get_problem(self, problem_id: int) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(ProblemRow, problem_id)
            return _problem_to_dict(row) if row else None

    def create_problem(self, data: dict) -> dict:
        _check_columns(data, PROBLEM_COLUMNS, "problems")
        if not data.get("title"):
            raise InvalidRecord("problems.title is required")
        with self.Session() as session:
            row = ProblemRow(
                title=data["title"],
                description=data.get("description", ""),
                difficulty=data.get("difficulty"),
                tags=list(data.get("tags") or []),
                created_at=time.time(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _problem_to_dict(row)

    def update_problem(self, problem_id: int, updates: dict) -> Optional[dict]:
        _check_columns(updates, PROBLEM_COLUMNS, "problems")
        with self.Session() as session:
            row = session.get(ProblemRow, problem_id)
            if not row:
                return None
            for key, value in updates.items():
                setattr(row, key, value)
            session.commit()
            return _problem_to_dict(row)

    def delete_problem(self, problem_id: int) -> bool:
        with self.Session() as session:
            row = session.get(ProblemRow, problem_id)
            if not row:
                return False
            session.query(TestCaseRow).filter(
                TestCaseRow.problem_id == problem_id
            ).delete(synchronize_session=False)
            session.delete(row)
            session.commit()
            return True

    def create_test_case(self, problem_id: int, data: dict) -> dict:
        _check_columns(data, TEST_CASE_COLUMNS, "test_cases")
        with self.Session() as session:
            row = TestCaseRow(
                problem_id=problem_id,
                input=data.get("input", ""),
                expected_output=data.get("expected_output", ""),
                is_visible=bool(data.get("is_visible", False)),
                is_sample=bool(data.get("is_sample", False)),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _test_case_to_dict(row)

    def list_test_cases(
        self, problem_id: int, visible_only: bool = False
    ) -> list[dict]:
        with self.Session() as session:
            query = (
                session.query(TestCaseRow)
                .filter(TestCaseRow.problem_id == problem_id)
                .order_by(TestCaseRow.id.asc())
            )
            if visible_only:
                query = query.filter(
                    or_(TestCaseRow.is_visible.is_(True), TestCaseRow.is_sample.is_(True))
                )
            return [_test_case_to_dict(row) for row in query.all()]

    def create_submission(
        self, user_id: str, problem_id: int, code: str, language: str
    ) -> dict:
        now = time.time()
        with self.Session() as session:
            row = SubmissionRow(
                id=uuid.uuid4().hex,
                user_id=user_id,
                problem_id=problem_id,
                code=code,
                language=language,
                status=SubmissionStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _submission_to_dict(row)

    def get_submission(self, submission_id: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(SubmissionRow, submission_id)
            return _submission_to_dict(row) if row else None

    def list_user_submissions(self, user_id: str, limit: int = 50) -> list[dict]:
        with self.Session() as session:
            rows = (
                session.query(SubmissionRow, ProblemRow)
                .outerjoin(ProblemRow, ProblemRow.id == SubmissionRow.problem_id)
                .filter(SubmissionRow.user_id == user_id)
                .order_by(SubmissionRow.created_at.desc())
                .limit(limit)
                .all()
            )
            results = []
            for submission, problem in rows:
                row = _submission_to_dict(submission)
                row["problems"] = (
                    {"title": problem.title, "difficulty": problem.difficulty}
                    if problem
                    else None
                )
                results.append(row)
            return results

    def update_submission(self, submission_id: str, updates: dict) -> Optional[dict]:
        _check_columns(updates, SUBMISSION_UPDATE_COLUMNS, "submissions")
        with self.Session() as session:
            row = session.get(SubmissionRow, submission_id)
            if not row:
                return None
            for key, value in updates.items():
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()
            return _submission_to_dict(row)

    def count_accepted_submissions(self, user_id: str, problem_id: int) -> int:
        with self.Session() as session:
            return (
                session.query(SubmissionRow)
                .filter(
                    SubmissionRow.user_id == user_id,
                    SubmissionRow.problem_id == problem_id,
                    SubmissionRow.status == SubmissionStatus.ACCEPTED.value,
                )
                .count()
            )

    def claim_next_pending_submission(self) -> Optional[dict]:
        with self.Session() as session:
            stmt = (
                select(SubmissionRow)
                .where(SubmissionRow.status == SubmissionStatus.PENDING.value)
                .order_by(SubmissionRow.created_at.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            row.status = SubmissionStatus.JUDGING.value
            row.updated_at = time.time()
            session.commit()
            return _submission_to_dict(row)

    def create_contest(self, data: dict) -> dict:
        _check_columns(data, CONTEST_COLUMNS, "contests")
        with self.Session() as session:
            row = ContestRow(
                title=data.get("title", ""),
                description=data.get("description", ""),
                status=data.get("status", "upcoming"),
                start_time=data.get("start_time", time.time()),
                end_time=data.get("end_time"),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _contest_to_dict(row)

    def list_contests(self, status: Optional[str] = None) -> list[dict]:
        with self.Session() as session:
            query = session.query(ContestRow).order_by(ContestRow.start_time.desc())
            if status:
                query = query.filter(ContestRow.status == status)
            return [_contest_to_dict(row) for row in query.all()]

    def get_contest(self, contest_id: int) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(ContestRow, contest_id)
            return _contest_to_dict(row) if row else None

    def add_contest_participant(self, contest_id: int, user_id: str) -> dict:
        with self.Session() as session:
            row = ParticipantRow(
                contest_id=contest_id,
                user_id=user_id,
                score=0,
                joined_at=time.time(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecord(
                    f"user {user_id} already registered for contest {contest_id}"
                ) from exc
            session.refresh(row)
            participant = _participant_to_dict(row)
        self._publish("contest_participants", "INSERT", new=participant)
        return participant

    def list_contest_participants(self, contest_id: int) -> list[dict]:
        with self.Session() as session:
            rows = (
                session.query(ParticipantRow, ProfileRow)
                .outerjoin(ProfileRow, ProfileRow.id == ParticipantRow.user_id)
                .filter(ParticipantRow.contest_id == contest_id)
                .order_by(ParticipantRow.score.desc())
                .all()
            )
            results = []
            for participant, profile in rows:
                row = _participant_to_dict(participant)
                row["profiles"] = {"username": profile.username} if profile else None
                results.append(row)
            return results


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    username = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(Float, nullable=False)


class ProfileRow(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    username = Column(String, nullable=False)
    rating = Column(Integer, nullable=False, default=0, index=True)
    solved_count = Column(Integer, nullable=False, default=0)
    streak = Column(Integer, nullable=False, default=0)
    avatar_url = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class ProblemRow(Base):
    __tablename__ = "problems"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    difficulty = Column(String, nullable=True, index=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False)


class TestCaseRow(Base):
    __tablename__ = "test_cases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    problem_id = Column(Integer, nullable=False, index=True)
    input = Column(Text, nullable=False, default="")
    expected_output = Column(Text, nullable=False, default="")
    is_visible = Column(Boolean, nullable=False, default=False)
    is_sample = Column(Boolean, nullable=False, default=False)


class SubmissionRow(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    problem_id = Column(Integer, nullable=False, index=True)
    code = Column(Text, nullable=False)
    language = Column(String, nullable=False)
    status = Column(String, nullable=False, index=True)
    execution_time = Column(Float, nullable=True)
    memory_used = Column(Float, nullable=True)
    test_cases_passed = Column(Integer, nullable=True)
    test_cases_total = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class ContestRow(Base):
    __tablename__ = "contests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, index=True)
    start_time = Column(Float, nullable=False)
    end_time = Column(Float, nullable=True)


class ParticipantRow(Base):
    __tablename__ = "contest_participants"
    __table_args__ = (UniqueConstraint("contest_id", "user_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    contest_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    score = Column(Integer, nullable=False, default=0)
    joined_at = Column(Float, nullable=False)


def _user_to_dict(row: UserRow) -> dict:
    return {
        "id": row.id,
        "email": row.email,
        "username": row.username,
        "password_hash": row.password_hash,
        "created_at": row.created_at,
    }


def _profile_to_dict(row: ProfileRow) -> dict:
    return {
        "id": row.id,
        "username": row.username,
        "rating": row.rating,
        "solved_count": row.solved_count,
        "streak": row.streak,
        "avatar_url": row.avatar_url,
        "created_at": row.created_at,
    }


def _problem_to_dict(row: ProblemRow) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "description": row.description,
        "difficulty": row.difficulty,
        "tags": list(row.tags or []),
        "created_at": row.created_at,
    }


def _test_case_to_dict(row: TestCaseRow) -> dict:
    return {
        "id": row.id,
        "problem_id": row.problem_id,
        "input": row.input,
        "expected_output": row.expected_output,
        "is_visible": row.is_visible,
        "is_sample": row.is_sample,
    }


def _submission_to_dict(row: SubmissionRow) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "problem_id": row.problem_id,
        "code": row.code,
        "language": row.language,
        "status": row.status,
        "execution_time": row.execution_time,
        "memory_used": row.memory_used,
        "test_cases_passed": row.test_cases_passed,
        "test_cases_total": row.test_cases_total,
        "error_message": row.error_message,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }


def _contest_to_dict(row: ContestRow) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "description": row.description,
        "status": row.status,
        "start_time": row.start_time,
        "end_time": row.end_time,
    }


def _participant_to_dict(row: ParticipantRow) -> dict:
    return {
        "id": row.id,
        "contest_id": row.contest_id,
        "user_id": row.user_id,
        "score": row.score,
        "joined_at": row.joined_at,
    }
