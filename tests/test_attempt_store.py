"""Tests for the SQLite attempt store and its schema-level guarantees."""

import asyncio
import sqlite3
from datetime import datetime, timezone

import pytest

from quiz_engine.db.attempts import SqliteAttemptStore
from quiz_engine.db.database import connect
from quiz_engine.errors import AlreadyAttempted, AttemptAlreadyCompleted, DuplicateAnswer, StoreUnavailable
from quiz_engine.models.quiz import Answer, Attempt, AttemptStatus, Difficulty, ScoreResult

STARTED = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _attempt(attempt_id="a1", student_id="student-1"):
    return Attempt(
        id=attempt_id,
        quiz_id="quiz-1",
        student_id=student_id,
        class_id="class-1",
        current_question_id="e1",
        question_count=3,
        started_at=STARTED,
    )


def _answer(question_id="e1", correct=True):
    return Answer(
        question_id=question_id,
        submitted_value="0",
        is_correct=correct,
        difficulty=Difficulty.EASY,
        points_awarded=1.0 if correct else 0.0,
        points_possible=1.0,
        answered_at=STARTED,
    )


RESULT = ScoreResult(correct_count=1, total_count=1, percentage=100.0, earned_points=1.0, possible_points=1.0)


def _run(db_path, scenario):
    async def wrapper():
        db = await connect(db_path)
        try:
            return await scenario(SqliteAttemptStore(db))
        finally:
            await db.close()

    return asyncio.run(wrapper())


def _count_rows(db_path, table):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


class TestCreateAttempt:

    def test_roundtrip(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt())
            return await store.get_attempt("a1")

        attempt = _run(seeded_db_path, scenario)
        assert attempt.status == AttemptStatus.IN_PROGRESS
        assert attempt.started_at == STARTED
        assert attempt.current_question_id == "e1"
        assert attempt.answers == []

    def test_second_live_attempt_rejected(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt("a1"))
            with pytest.raises(AlreadyAttempted) as exc_info:
                await store.create_attempt(_attempt("a2"))
            return exc_info.value

        err = _run(seeded_db_path, scenario)
        assert err.existing_attempt_id == "a1"
        assert _count_rows(seeded_db_path, "quiz_attempts") == 1

    def test_soft_delete_allows_new_attempt(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt("a1"))
            assert await store.delete_attempt("a1") is True
            assert await store.delete_attempt("a1") is False
            await store.create_attempt(_attempt("a2"))
            return await store.get_attempt("a1"), await store.get_attempt("a2")

        deleted, fresh = _run(seeded_db_path, scenario)
        assert deleted is None
        assert fresh.id == "a2"
        assert _count_rows(seeded_db_path, "quiz_attempts") == 2


class TestAnswersAndCompletion:

    def test_duplicate_answer_rejected(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt())
            await store.record_answer("a1", _answer(), Difficulty.MEDIUM, "m1", 2)
            with pytest.raises(DuplicateAnswer):
                await store.record_answer("a1", _answer(), Difficulty.MEDIUM, "m1", 2)
            return await store.get_attempt("a1")

        attempt = _run(seeded_db_path, scenario)
        assert len(attempt.answers) == 1
        assert attempt.answers[0].is_correct is True

    def test_mark_completed_is_compare_and_set(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt())
            await store.record_answer("a1", _answer(), Difficulty.MEDIUM, "m1", 2)
            first = await store.mark_completed("a1", RESULT, STARTED)
            second = await store.mark_completed("a1", RESULT, STARTED)
            return first, second, await store.get_attempt("a1")

        first, second, attempt = _run(seeded_db_path, scenario)
        assert (first, second) == (True, False)
        assert attempt.status == AttemptStatus.COMPLETED
        assert attempt.score == 1
        assert attempt.percentage == 100.0
        assert attempt.current_question_id is None

    def test_no_answers_after_completion(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt())
            await store.mark_completed("a1", RESULT, STARTED)
            await store.record_answer("a1", _answer(), Difficulty.MEDIUM, "m1", 2)

        with pytest.raises(AttemptAlreadyCompleted):
            _run(seeded_db_path, scenario)
        assert _count_rows(seeded_db_path, "attempt_answers") == 0

    def test_answer_and_cursor_land_together(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt())
            await store.record_answer("a1", _answer(), Difficulty.MEDIUM, "m1", 2)
            await store.save_recommendations("a1", ["Review fractions"])
            return await store.get_attempt("a1")

        attempt = _run(seeded_db_path, scenario)
        assert [a.question_id for a in attempt.answers] == ["e1"]
        assert attempt.current_difficulty == Difficulty.MEDIUM
        assert attempt.current_question_id == "m1"
        assert attempt.question_number == 2
        assert attempt.recommendations == ["Review fractions"]

    def test_last_answer_clears_the_cursor(self, seeded_db_path):
        async def scenario(store):
            await store.create_attempt(_attempt())
            await store.record_answer("a1", _answer(), Difficulty.MEDIUM, None, 1)
            return await store.get_attempt("a1")

        attempt = _run(seeded_db_path, scenario)
        assert attempt.current_question_id is None
        assert attempt.awaiting_completion is True


class TestStoreFailures:

    def test_driver_error_becomes_store_unavailable(self, seeded_db_path):
        conn = sqlite3.connect(seeded_db_path)
        conn.execute("DROP TABLE attempt_answers")
        conn.commit()
        conn.close()

        async def scenario(store):
            await store.create_attempt(_attempt())
            await store.get_attempt("a1")

        with pytest.raises(StoreUnavailable) as exc_info:
            _run(seeded_db_path, scenario)
        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 503

    def test_failed_cursor_update_leaves_no_answer(self, seeded_db_path):
        async def create(store):
            await store.create_attempt(_attempt())

        _run(seeded_db_path, create)
        conn = sqlite3.connect(seeded_db_path)
        conn.execute(
            """CREATE TRIGGER block_cursor BEFORE UPDATE OF current_question_id ON quiz_attempts
               BEGIN SELECT RAISE(ABORT, 'cursor writes blocked'); END"""
        )
        conn.commit()
        conn.close()

        async def record(store):
            await store.record_answer("a1", _answer(), Difficulty.MEDIUM, "m1", 2)

        with pytest.raises(StoreUnavailable):
            _run(seeded_db_path, record)
        assert _count_rows(seeded_db_path, "attempt_answers") == 0

        conn = sqlite3.connect(seeded_db_path)
        conn.execute("DROP TRIGGER block_cursor")
        conn.commit()
        conn.close()

        async def retry(store):
            await record(store)
            return await store.get_attempt("a1")

        attempt = _run(seeded_db_path, retry)
        assert [a.question_id for a in attempt.answers] == ["e1"]
        assert attempt.current_question_id == "m1"
