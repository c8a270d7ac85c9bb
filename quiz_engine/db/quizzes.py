"""
quizzes.py - Quiz configuration and question authoring queries

Quizzes and their questions are written by the content-authoring path
(seed scripts, admin tooling); the attempt engine only reads them.
Driver failures surface as StoreUnavailable; IntegrityError (a duplicate id
on the authoring path) is left to the caller.
"""

import functools
import json
import logging
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from quiz_engine.config import settings
from quiz_engine.errors import StoreUnavailable
from quiz_engine.models.quiz import Difficulty, Question, QuizConfig

logger = logging.getLogger(__name__)


def _quiz_query(operation: str, key_name: str):
    """Map driver failures to StoreUnavailable, tagged with the looked-up key."""

    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(db, key, *args, **kwargs):
            try:
                return await fn(db, key, *args, **kwargs)
            except aiosqlite.IntegrityError:
                raise
            except aiosqlite.Error as e:
                logger.error(f"Quiz store failure during {operation} ({key_name}={key}): {e}")
                raise StoreUnavailable(operation, **{key_name: key}) from e

        return wrapper

    return decorator


@_quiz_query("create quiz", "quiz_id")
async def create_quiz(
    db: aiosqlite.Connection,
    quiz_id: str,
    class_id: Optional[str] = None,
    title: str = "Quiz",
    question_count: Optional[int] = None,
    starting_difficulty: Optional[Difficulty] = None,
    time_limit_minutes: Optional[int] = None,
) -> str:
    """Create a quiz row. Unset fields fall back to settings at read time."""
    await db.execute(
        """INSERT INTO quizzes (id, class_id, title, question_count, starting_difficulty, time_limit_minutes)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (
            quiz_id,
            class_id,
            title,
            question_count,
            Difficulty(starting_difficulty).value if starting_difficulty else None,
            time_limit_minutes,
        ),
    )
    await db.commit()
    return quiz_id


@_quiz_query("get quiz", "quiz_id")
async def get_quiz(db: aiosqlite.Connection, quiz_id: str) -> Optional[QuizConfig]:
    """Get a quiz's attempt configuration by ID."""
    cursor = await db.execute("SELECT * FROM quizzes WHERE id = ?", (quiz_id,))
    row = await cursor.fetchone()
    if not row:
        return None
    return QuizConfig(
        id=row["id"],
        class_id=row["class_id"],
        title=row["title"],
        question_count=row["question_count"] or settings.default_question_count,
        starting_difficulty=row["starting_difficulty"] or settings.default_starting_difficulty,
        time_limit_minutes=row["time_limit_minutes"],
    )


@_quiz_query("list class quizzes", "class_id")
async def get_quizzes_by_class(db: aiosqlite.Connection, class_id: str) -> List[Dict[str, Any]]:
    cursor = await db.execute(
        "SELECT id, title FROM quizzes WHERE class_id = ? ORDER BY created_at, id",
        (class_id,),
    )
    return [dict(r) for r in await cursor.fetchall()]


@_quiz_query("add question", "quiz_id")
async def add_question(db: aiosqlite.Connection, quiz_id: str, question: Question) -> str:
    """Add a question to a quiz's pool. Returns the question ID."""
    await db.execute(
        """INSERT INTO questions
           (id, quiz_id, prompt, options_json, correct_answer, difficulty, subject, points, explanation)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            question.id,
            quiz_id,
            question.prompt,
            json.dumps(question.options) if question.options else None,
            str(question.correct_answer),
            question.difficulty.value,
            question.subject,
            question.points,
            question.explanation,
        ),
    )
    await db.commit()
    return question.id


async def add_questions(db: aiosqlite.Connection, quiz_id: str, questions: Iterable[Question]) -> int:
    count = 0
    for question in questions:
        await add_question(db, quiz_id, question)
        count += 1
    return count


@_quiz_query("get question index", "quiz_id")
async def get_question_index(db: aiosqlite.Connection, quiz_id: str) -> Dict[str, Dict[str, Any]]:
    """Prompt and difficulty per question id, for analytics labels."""
    cursor = await db.execute(
        "SELECT id, prompt, difficulty FROM questions WHERE quiz_id = ?",
        (quiz_id,),
    )
    return {r["id"]: {"prompt": r["prompt"], "difficulty": r["difficulty"]} for r in await cursor.fetchall()}
