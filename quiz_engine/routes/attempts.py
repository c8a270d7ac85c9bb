"""Attempt endpoints: start, answer, complete, view, list and delete quiz attempts.

Callers authenticate upstream and pass the student id in the request body;
checking that a viewer owns an attempt is the caller's job.
"""

import logging
from typing import Any, Dict, List, Tuple

import aiosqlite
from fastapi import APIRouter, BackgroundTasks, Depends

from quiz_engine.db import attempts as attempt_db
from quiz_engine.db import quizzes as quiz_db
from quiz_engine.db.attempts import SqliteAttemptStore
from quiz_engine.db.database import connect, get_db
from quiz_engine.errors import AttemptNotFound, QuizNotFound, StoreUnavailable
from quiz_engine.models.quiz import (
    Attempt,
    StartAttemptRequest,
    StartedAttempt,
    SubmitAnswerRequest,
    SubmitResult,
)
from quiz_engine.services import analytics
from quiz_engine.services.attempt_engine import AttemptEngine
from quiz_engine.services.question_bank import SqlQuestionRepository
from quiz_engine.services.recommendations import generate_recommendations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/attempts", tags=["attempts"])


# ── Helpers ──────────────────────────────────────────────────────────

async def _refresh_progress(db: aiosqlite.Connection, attempt: Attempt) -> None:
    if not attempt.class_id:
        return
    try:
        await analytics.refresh_student_progress(db, attempt.student_id, attempt.class_id)
    except StoreUnavailable as e:
        logger.warning(f"Progress refresh skipped for attempt {attempt.id}: {e}")


async def on_attempt_completed(attempt: Attempt) -> None:
    """Refresh the student's class progress, then store recommendations.

    Runs after the response is sent, so it opens its own connection.
    """
    db = await connect()
    try:
        await _refresh_progress(db, attempt)
        recommendations = await generate_recommendations(attempt)
        await SqliteAttemptStore(db).save_recommendations(attempt.id, recommendations)
    finally:
        await db.close()


def _engine(db: aiosqlite.Connection, quiz_id: str, background_tasks: BackgroundTasks) -> AttemptEngine:
    return AttemptEngine(
        SqliteAttemptStore(db),
        SqlQuestionRepository(db, quiz_id),
        on_completed=on_attempt_completed,
        defer=background_tasks.add_task,
    )


async def _engine_for_attempt(
    db: aiosqlite.Connection, attempt_id: str, background_tasks: BackgroundTasks
) -> Tuple[AttemptEngine, Attempt]:
    attempt = await SqliteAttemptStore(db).get_attempt(attempt_id)
    if attempt is None:
        raise AttemptNotFound(attempt_id)
    return _engine(db, attempt.quiz_id, background_tasks), attempt


def _attempt_summary(attempt: Attempt) -> Dict[str, Any]:
    return {
        "attempt_id": attempt.id,
        "quiz_id": attempt.quiz_id,
        "student_id": attempt.student_id,
        "status": attempt.status.value,
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "percentage": attempt.percentage,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
        "recommendations": attempt.recommendations,
    }


# ── Endpoints ────────────────────────────────────────────────────────

@router.post("", response_model=StartedAttempt, status_code=201)
async def start_attempt(body: StartAttemptRequest, background_tasks: BackgroundTasks, db=Depends(get_db)):
    """Start an attempt and return its first question (without the answer)."""
    quiz = await quiz_db.get_quiz(db, body.quiz_id)
    if quiz is None:
        raise QuizNotFound(body.quiz_id)
    return await _engine(db, quiz.id, background_tasks).start(quiz, body.student_id)


@router.get("/quiz/{quiz_id}")
async def list_quiz_attempts(quiz_id: str, db=Depends(get_db)) -> List[Dict[str, Any]]:
    """Every live attempt on a quiz, most recently completed first."""
    if await quiz_db.get_quiz(db, quiz_id) is None:
        raise QuizNotFound(quiz_id)
    attempts = await attempt_db.list_quiz_attempts(db, quiz_id, order_by=attempt_db.NEWEST_COMPLETED_FIRST)
    return [_attempt_summary(a) for a in attempts]


@router.get("/class/{class_id}/students/{student_id}")
async def list_student_class_attempts(class_id: str, student_id: str, db=Depends(get_db)) -> List[Dict[str, Any]]:
    """A student's attempts across a class's quizzes, most recently completed first."""
    attempts = await attempt_db.list_class_attempts(
        db, class_id, student_id=student_id, order_by=attempt_db.NEWEST_COMPLETED_FIRST
    )
    return [_attempt_summary(a) for a in attempts]


@router.get("/{attempt_id}")
async def get_attempt(attempt_id: str, background_tasks: BackgroundTasks, db=Depends(get_db)):
    engine, _ = await _engine_for_attempt(db, attempt_id, background_tasks)
    attempt = await engine.get_attempt(attempt_id)
    return {
        **_attempt_summary(attempt),
        "current_difficulty": attempt.current_difficulty.value,
        "current_question_id": attempt.current_question_id,
        "question_number": attempt.question_number,
        "question_count": attempt.question_count,
        "deadline": attempt.deadline,
        "answers": [a.model_dump(mode="json") for a in attempt.answers],
    }


@router.post("/{attempt_id}/answer", response_model=SubmitResult)
async def submit_answer(
    attempt_id: str, body: SubmitAnswerRequest, background_tasks: BackgroundTasks, db=Depends(get_db)
):
    """
    Submit the answer to the currently asked question.

    Request body:
    {
        "question_id": "q3",
        "answer": 2            # option index, option text, true/false, or free text
    }
    """
    engine, _ = await _engine_for_attempt(db, attempt_id, background_tasks)
    return await engine.submit_answer(attempt_id, body.question_id, body.answer)


@router.post("/{attempt_id}/complete")
async def complete_attempt(attempt_id: str, background_tasks: BackgroundTasks, db=Depends(get_db)):
    """Finalize the attempt. Safe to call more than once."""
    engine, _ = await _engine_for_attempt(db, attempt_id, background_tasks)
    attempt = await engine.complete(attempt_id)
    return _attempt_summary(attempt)


@router.delete("/{attempt_id}")
async def delete_attempt(attempt_id: str, background_tasks: BackgroundTasks, db=Depends(get_db)):
    """Soft-delete the attempt and drop it from the student's class progress."""
    engine, attempt = await _engine_for_attempt(db, attempt_id, background_tasks)
    await engine.delete_attempt(attempt_id)
    await _refresh_progress(db, attempt)
    return {"attempt_id": attempt_id, "deleted": True}
