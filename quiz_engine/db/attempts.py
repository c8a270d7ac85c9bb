"""
attempts.py - Attempt store: durable attempt / answer persistence

Provides:
- AttemptStore - the storage contract the attempt engine is written against
- SqliteAttemptStore - durable implementation on aiosqlite
- list_quiz_attempts / list_class_attempts / list_quiz_answers - analytics reads
- upsert_student_progress - stores the recomputed progress row

Invariants enforced by the schema rather than by read-then-write:
- one live attempt per (quiz, student): partial UNIQUE index, the INSERT is the check
- one answer per (attempt, question): UNIQUE constraint
- completion is a compare-and-set on status = 'in_progress'
"""

import functools
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiosqlite

from quiz_engine.errors import (
    AlreadyAttempted,
    AttemptAlreadyCompleted,
    DuplicateAnswer,
    QuizEngineError,
    StoreUnavailable,
)
from quiz_engine.models.quiz import (
    Answer,
    Attempt,
    AttemptStatus,
    Difficulty,
    ScoreResult,
    StudentProgress,
)

logger = logging.getLogger(__name__)


class AttemptStore(ABC):
    """Persistence contract for attempts and their answers."""

    @abstractmethod
    async def create_attempt(self, attempt: Attempt) -> Attempt:
        """Insert a new attempt; raise AlreadyAttempted if the pair already has one."""

    @abstractmethod
    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        """Return the live attempt with its answers, or None."""

    @abstractmethod
    async def record_answer(
        self,
        attempt_id: str,
        answer: Answer,
        difficulty: Difficulty,
        next_question_id: Optional[str],
        question_number: int,
    ) -> None:
        """Store an answer and move the cursor to the next question in one write.

        next_question_id is None when no question follows. Nothing is written
        on failure. Raises DuplicateAnswer / AttemptAlreadyCompleted on conflict.
        """

    @abstractmethod
    async def mark_completed(self, attempt_id: str, result: ScoreResult, completed_at: datetime) -> bool:
        """Complete an in-progress attempt. Returns False if it was already completed."""

    @abstractmethod
    async def save_recommendations(self, attempt_id: str, recommendations: List[str]) -> None:
        ...

    @abstractmethod
    async def delete_attempt(self, attempt_id: str) -> bool:
        """Soft-delete an attempt so the (quiz, student) pair may start again."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _store_operation(operation: str):
    """Turn driver failures into StoreUnavailable, keeping domain errors as-is."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, *args, **kwargs):
            try:
                return await fn(self, *args, **kwargs)
            except QuizEngineError:
                raise
            except aiosqlite.Error as e:
                attempt_id = args[0] if args and isinstance(args[0], str) else None
                logger.error(f"Attempt store failure during {operation} (attempt={attempt_id}): {e}")
                raise StoreUnavailable(operation, attempt_id=attempt_id) from e

        return wrapper

    return decorator


def _row_to_answer(row: aiosqlite.Row) -> Answer:
    return Answer(
        question_id=row["question_id"],
        submitted_value=row["student_answer"] or "",
        is_correct=bool(row["is_correct"]),
        difficulty=Difficulty(row["difficulty"]),
        points_awarded=row["points_awarded"],
        points_possible=row["points_possible"],
        answered_at=_parse_dt(row["answered_at"]),
    )


def _row_to_attempt(row: aiosqlite.Row, answers: Optional[List[Answer]] = None) -> Attempt:
    recommendations = json.loads(row["recommendations_json"]) if row["recommendations_json"] else []
    return Attempt(
        id=row["id"],
        quiz_id=row["quiz_id"],
        student_id=row["student_id"],
        class_id=row["class_id"],
        status=AttemptStatus(row["status"]),
        current_difficulty=Difficulty(row["current_difficulty"]),
        current_question_id=row["current_question_id"],
        question_number=row["question_number"],
        question_count=row["question_count"],
        answers=answers or [],
        started_at=_parse_dt(row["started_at"]),
        deadline=_parse_dt(row["deadline"]),
        completed_at=_parse_dt(row["completed_at"]),
        score=row["score"],
        total_questions=row["total_questions"],
        percentage=row["percentage"],
        recommendations=recommendations,
    )


class SqliteAttemptStore(AttemptStore):
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    @_store_operation("create attempt")
    async def create_attempt(self, attempt: Attempt) -> Attempt:
        try:
            await self.db.execute(
                """INSERT INTO quiz_attempts
                   (id, quiz_id, student_id, class_id, status, current_difficulty,
                    current_question_id, question_number, question_count, started_at, deadline)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    attempt.id,
                    attempt.quiz_id,
                    attempt.student_id,
                    attempt.class_id,
                    attempt.status.value,
                    attempt.current_difficulty.value,
                    attempt.current_question_id,
                    attempt.question_number,
                    attempt.question_count,
                    _iso(attempt.started_at),
                    _iso(attempt.deadline),
                ),
            )
            await self.db.commit()
        except aiosqlite.IntegrityError:
            await self.db.rollback()
            cursor = await self.db.execute(
                """SELECT id FROM quiz_attempts
                   WHERE quiz_id = ? AND student_id = ? AND deleted_at IS NULL""",
                (attempt.quiz_id, attempt.student_id),
            )
            existing = await cursor.fetchone()
            raise AlreadyAttempted(
                attempt.quiz_id, attempt.student_id, existing["id"] if existing else None
            )
        return attempt

    @_store_operation("get attempt")
    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        cursor = await self.db.execute(
            "SELECT * FROM quiz_attempts WHERE id = ? AND deleted_at IS NULL",
            (attempt_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None

        cursor = await self.db.execute(
            "SELECT * FROM attempt_answers WHERE attempt_id = ? ORDER BY id",
            (attempt_id,),
        )
        answers = [_row_to_answer(r) for r in await cursor.fetchall()]
        return _row_to_attempt(row, answers)

    @_store_operation("record answer")
    async def record_answer(
        self,
        attempt_id: str,
        answer: Answer,
        difficulty: Difficulty,
        next_question_id: Optional[str],
        question_number: int,
    ) -> None:
        try:
            # Only lands while the attempt is still in progress
            cursor = await self.db.execute(
                """INSERT INTO attempt_answers
                   (attempt_id, question_id, student_answer, is_correct, difficulty,
                    points_awarded, points_possible, answered_at)
                   SELECT ?, ?, ?, ?, ?, ?, ?, ?
                   WHERE EXISTS (
                       SELECT 1 FROM quiz_attempts
                       WHERE id = ? AND status = 'in_progress' AND deleted_at IS NULL
                   )""",
                (
                    attempt_id,
                    answer.question_id,
                    answer.submitted_value,
                    int(answer.is_correct),
                    answer.difficulty.value,
                    answer.points_awarded,
                    answer.points_possible,
                    _iso(answer.answered_at),
                    attempt_id,
                ),
            )
            if cursor.rowcount == 0:
                await self.db.rollback()
                raise AttemptAlreadyCompleted(attempt_id)

            await self.db.execute(
                """UPDATE quiz_attempts
                   SET current_difficulty = ?, current_question_id = ?, question_number = ?
                   WHERE id = ? AND status = 'in_progress'""",
                (Difficulty(difficulty).value, next_question_id, question_number, attempt_id),
            )
            await self.db.commit()
        except aiosqlite.IntegrityError as e:
            await self.db.rollback()
            if "UNIQUE" in str(e):
                raise DuplicateAnswer(attempt_id, answer.question_id)
            raise
        except aiosqlite.Error:
            await self.db.rollback()
            raise

    @_store_operation("complete attempt")
    async def mark_completed(self, attempt_id: str, result: ScoreResult, completed_at: datetime) -> bool:
        cursor = await self.db.execute(
            """UPDATE quiz_attempts
               SET status = 'completed', completed_at = ?, current_question_id = NULL,
                   score = ?, total_questions = ?, percentage = ?,
                   earned_points = ?, possible_points = ?
               WHERE id = ? AND status = 'in_progress' AND deleted_at IS NULL""",
            (
                _iso(completed_at),
                result.correct_count,
                result.total_count,
                result.percentage,
                result.earned_points,
                result.possible_points,
                attempt_id,
            ),
        )
        await self.db.commit()
        return cursor.rowcount == 1

    @_store_operation("save recommendations")
    async def save_recommendations(self, attempt_id: str, recommendations: List[str]) -> None:
        await self.db.execute(
            "UPDATE quiz_attempts SET recommendations_json = ? WHERE id = ?",
            (json.dumps(recommendations), attempt_id),
        )
        await self.db.commit()

    @_store_operation("delete attempt")
    async def delete_attempt(self, attempt_id: str) -> bool:
        cursor = await self.db.execute(
            "UPDATE quiz_attempts SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
            (_iso(utcnow()), attempt_id),
        )
        await self.db.commit()
        return cursor.rowcount == 1


# ══════════════════════════════════════════════════════════════════════════════
# ANALYTICS READS
# ══════════════════════════════════════════════════════════════════════════════

STARTED_FIRST = "started_at"
# Most recently completed first, attempts still in progress after them
NEWEST_COMPLETED_FIRST = "completed_at IS NULL, completed_at DESC, started_at DESC"


async def _fetch_attempts(
    db: aiosqlite.Connection, where: str, params: tuple, order_by: str = STARTED_FIRST
) -> List[Attempt]:
    try:
        cursor = await db.execute(
            f"""SELECT * FROM quiz_attempts
                WHERE {where} AND deleted_at IS NULL
                ORDER BY {order_by}""",
            params,
        )
        rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        logger.error(f"Attempt listing failed ({where}): {e}")
        raise StoreUnavailable("list attempts") from e
    return [_row_to_attempt(r) for r in rows]


async def list_quiz_attempts(
    db: aiosqlite.Connection, quiz_id: str, order_by: str = STARTED_FIRST
) -> List[Attempt]:
    """All live attempts (any status) on a quiz, without their answers."""
    return await _fetch_attempts(db, "quiz_id = ?", (quiz_id,), order_by)


async def list_class_attempts(
    db: aiosqlite.Connection,
    class_id: str,
    student_id: Optional[str] = None,
    order_by: str = STARTED_FIRST,
) -> List[Attempt]:
    """All live attempts on the quizzes of a class, optionally for one student."""
    if student_id is None:
        return await _fetch_attempts(db, "class_id = ?", (class_id,), order_by)
    return await _fetch_attempts(db, "class_id = ? AND student_id = ?", (class_id, student_id), order_by)


async def list_quiz_answers(db: aiosqlite.Connection, quiz_id: str) -> List[Dict[str, Any]]:
    """Graded answers from completed attempts on a quiz."""
    try:
        cursor = await db.execute(
            """SELECT aa.question_id, aa.is_correct, aa.difficulty
               FROM attempt_answers aa
               JOIN quiz_attempts qa ON qa.id = aa.attempt_id
               WHERE qa.quiz_id = ? AND qa.status = 'completed' AND qa.deleted_at IS NULL
               ORDER BY aa.id""",
            (quiz_id,),
        )
        rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        logger.error(f"Answer listing failed for quiz {quiz_id}: {e}")
        raise StoreUnavailable("list answers", quiz_id=quiz_id) from e
    return [
        {"question_id": r["question_id"], "is_correct": bool(r["is_correct"]), "difficulty": r["difficulty"]}
        for r in rows
    ]


async def upsert_student_progress(db: aiosqlite.Connection, progress: StudentProgress) -> None:
    try:
        await db.execute(
            """INSERT INTO student_progress
               (student_id, class_id, quizzes_attempted, average_score, last_attempt_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT (student_id, class_id) DO UPDATE SET
                   quizzes_attempted = excluded.quizzes_attempted,
                   average_score = excluded.average_score,
                   last_attempt_at = excluded.last_attempt_at,
                   updated_at = excluded.updated_at""",
            (
                progress.student_id,
                progress.class_id,
                progress.quizzes_attempted,
                progress.average_score,
                _iso(progress.last_attempt_at),
                _iso(utcnow()),
            ),
        )
        await db.commit()
    except aiosqlite.Error as e:
        logger.error(f"Progress upsert failed for student {progress.student_id}: {e}")
        raise StoreUnavailable("upsert progress", student_id=progress.student_id) from e
