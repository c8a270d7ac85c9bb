"""
question_bank.py - Question repositories used by the attempt engine

Provides:
- QuestionRepository - read-only lookup / random draw contract
- InMemoryQuestionRepository - fixed question list (guest quizzes, tests)
- SqlQuestionRepository - the question pool of one quiz, read from SQLite
- DEFAULT_QUESTION_BANK - the built-in 12 question bank

The engine never writes through a repository; questions are authored
elsewhere (see quiz_engine.db.quizzes.add_question).
"""

import json
import logging
import random
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

import aiosqlite

from quiz_engine.errors import QuestionNotFound, RepositoryExhausted, StoreUnavailable
from quiz_engine.models.quiz import Difficulty, Question, QuestionType, detect_question_type

logger = logging.getLogger(__name__)


class QuestionRepository(ABC):
    """Read-only question source, safe to share between concurrent attempts."""

    @abstractmethod
    async def get_by_id(self, question_id: str) -> Question:
        """Return the question or raise QuestionNotFound."""

    @abstractmethod
    async def get_random_by_difficulty(
        self, difficulty: Difficulty, exclude_ids: Iterable[str] = ()
    ) -> Question:
        """Draw uniformly among questions of `difficulty` not in `exclude_ids`.

        Falls back to any remaining question when none of that difficulty is
        left, and raises RepositoryExhausted when nothing is left at all.
        """


def pick_question(
    questions: Sequence[Question],
    difficulty: Difficulty,
    exclude_ids: Iterable[str],
    rng: random.Random,
) -> Question:
    """Shared draw policy for every repository implementation."""
    excluded = set(exclude_ids)
    remaining = [q for q in questions if q.id not in excluded]
    if not remaining:
        raise RepositoryExhausted()

    matching = [q for q in remaining if q.difficulty == difficulty]
    if not matching:
        logger.info(
            "No %s questions left, drawing from %d remaining question(s) of any difficulty",
            Difficulty(difficulty).value,
            len(remaining),
        )
        return rng.choice(remaining)
    return rng.choice(matching)


class InMemoryQuestionRepository(QuestionRepository):
    def __init__(self, questions: Iterable[Question], rng: Optional[random.Random] = None):
        self._questions: List[Question] = list(questions)
        self._by_id = {q.id: q for q in self._questions}
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._questions)

    async def get_by_id(self, question_id: str) -> Question:
        question = self._by_id.get(question_id)
        if question is None:
            raise QuestionNotFound(question_id)
        return question

    async def get_random_by_difficulty(
        self, difficulty: Difficulty, exclude_ids: Iterable[str] = ()
    ) -> Question:
        return pick_question(self._questions, difficulty, exclude_ids, self._rng)


# ── SQLite-backed pool ───────────────────────────────────────────────

def row_to_question(row) -> Question:
    """Build a Question from a `questions` table row."""
    options = json.loads(row["options_json"]) if row["options_json"] else None
    correct = row["correct_answer"]
    if detect_question_type(options) == QuestionType.MULTIPLE_CHOICE and str(correct).isdigit():
        correct = int(correct)
    return Question(
        id=row["id"],
        prompt=row["prompt"],
        options=options,
        correct_answer=correct,
        difficulty=Difficulty(row["difficulty"]),
        subject=row["subject"] or "general",
        points=row["points"] if row["points"] is not None else 1.0,
        explanation=row["explanation"] or "",
    )


class SqlQuestionRepository(QuestionRepository):
    """Questions authored for a single quiz."""

    def __init__(self, db: aiosqlite.Connection, quiz_id: str, rng: Optional[random.Random] = None):
        self._db = db
        self._quiz_id = quiz_id
        self._rng = rng or random.Random()

    async def get_by_id(self, question_id: str) -> Question:
        try:
            cursor = await self._db.execute(
                "SELECT * FROM questions WHERE id = ? AND quiz_id = ?",
                (question_id, self._quiz_id),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.error(f"Question lookup failed for quiz {self._quiz_id}: {e}")
            raise StoreUnavailable("question lookup", quiz_id=self._quiz_id) from e
        if not row:
            raise QuestionNotFound(question_id)
        return row_to_question(row)

    async def get_random_by_difficulty(
        self, difficulty: Difficulty, exclude_ids: Iterable[str] = ()
    ) -> Question:
        try:
            cursor = await self._db.execute(
                "SELECT * FROM questions WHERE quiz_id = ? ORDER BY id",
                (self._quiz_id,),
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error(f"Question draw failed for quiz {self._quiz_id}: {e}")
            raise StoreUnavailable("question draw", quiz_id=self._quiz_id) from e

        questions = [row_to_question(r) for r in rows]
        try:
            return pick_question(questions, difficulty, exclude_ids, self._rng)
        except RepositoryExhausted:
            raise RepositoryExhausted(quiz_id=self._quiz_id) from None


# ── Built-in bank ────────────────────────────────────────────────────

def _q(qid, prompt, options, correct, difficulty, subject):
    return Question(
        id=qid,
        prompt=prompt,
        options=options,
        correct_answer=correct,
        difficulty=difficulty,
        subject=subject,
    )


DEFAULT_QUESTION_BANK = (
    # Easy
    _q("q1", "What is 5 + 7?", ["10", "11", "12", "13"], 2, Difficulty.EASY, "Math"),
    _q("q2", "Which planet is known as the Red Planet?", ["Venus", "Mars", "Jupiter", "Saturn"], 1, Difficulty.EASY, "Science"),
    _q("q3", "What is the capital of France?", ["London", "Berlin", "Paris", "Madrid"], 2, Difficulty.EASY, "Geography"),
    _q("q4", "How many sides does a triangle have?", ["2", "3", "4", "5"], 1, Difficulty.EASY, "Math"),
    # Medium
    _q("q5", "What is the square root of 144?", ["10", "11", "12", "13"], 2, Difficulty.MEDIUM, "Math"),
    _q("q6", 'Which element has the chemical symbol "Au"?', ["Silver", "Gold", "Aluminum", "Argon"], 1, Difficulty.MEDIUM, "Science"),
    _q("q7", "In which year did World War II end?", ["1943", "1944", "1945", "1946"], 2, Difficulty.MEDIUM, "History"),
    _q("q8", "What is 15% of 200?", ["25", "30", "35", "40"], 1, Difficulty.MEDIUM, "Math"),
    # Hard
    _q("q9", "What is the derivative of x² + 3x?", ["2x + 3", "x + 3", "2x", "x² + 3"], 0, Difficulty.HARD, "Math"),
    _q("q10", "Which scientist proposed the theory of general relativity?", ["Isaac Newton", "Albert Einstein", "Stephen Hawking", "Niels Bohr"], 1, Difficulty.HARD, "Science"),
    _q("q11", "What is the atomic number of Carbon?", ["4", "6", "8", "12"], 1, Difficulty.HARD, "Science"),
    _q("q12", "Solve for x: 3x + 7 = 22", ["3", "4", "5", "6"], 2, Difficulty.HARD, "Math"),
)
