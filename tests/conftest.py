"""Shared fixtures for the attempt engine tests.

Database tests run against a temporary SQLite file built from schema.sql;
async code is driven with asyncio.run inside ordinary test functions.
"""

import os
import sqlite3

import pytest

# Keep tests away from real AI providers and the working directory's database
os.environ.setdefault("RECOMMENDATIONS_ENABLED", "false")
os.environ.setdefault("API_KEY", "")
os.environ.setdefault("ANTHROPIC_API_KEY", "")

from quiz_engine.db.database import SCHEMA_PATH
from quiz_engine.models.quiz import Difficulty, Question


def make_question(qid, difficulty=Difficulty.EASY, correct=0, subject="Math", points=1.0):
    """Four-option multiple choice question whose correct option is `correct`."""
    return Question(
        id=qid,
        prompt=f"Question {qid}?",
        options=["A", "B", "C", "D"],
        correct_answer=correct,
        difficulty=difficulty,
        subject=subject,
        points=points,
    )


# One hard, one medium, two easy: the e2e ladder walk is fully determined
LADDER_QUESTIONS = [
    make_question("e1", Difficulty.EASY),
    make_question("e2", Difficulty.EASY),
    make_question("m1", Difficulty.MEDIUM),
    make_question("h1", Difficulty.HARD),
]


@pytest.fixture
def db_path(tmp_path):
    """Path of an empty database with the full schema applied."""
    path = str(tmp_path / "test_quiz_engine.db")
    conn = sqlite3.connect(path)
    conn.executescript(SCHEMA_PATH.read_text())
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def seeded_db_path(db_path):
    """Database with quiz "quiz-1" (class "class-1", 3 questions) and the ladder pool."""
    conn = sqlite3.connect(db_path)
    conn.execute(
        """INSERT INTO quizzes (id, class_id, title, question_count, starting_difficulty)
           VALUES ('quiz-1', 'class-1', 'Ladder quiz', 3, 'easy')"""
    )
    for q in LADDER_QUESTIONS:
        conn.execute(
            """INSERT INTO questions (id, quiz_id, prompt, options_json, correct_answer, difficulty, subject, points)
               VALUES (?, 'quiz-1', ?, '["A", "B", "C", "D"]', ?, ?, ?, ?)""",
            (q.id, q.prompt, str(q.correct_answer), q.difficulty.value, q.subject, q.points),
        )
    conn.commit()
    conn.close()
    return db_path
