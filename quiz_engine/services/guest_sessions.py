"""In-memory attempt store for guest quizzes.

Guest sessions run the same adaptive engine as durable attempts, but nothing
is written to the database. Sessions are dropped once they have been idle for
`ttl_minutes`, whether they were finished or abandoned, so the process does
not accumulate state from students who close the tab.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from quiz_engine.config import settings
from quiz_engine.db.attempts import AttemptStore
from quiz_engine.errors import AlreadyAttempted, AttemptAlreadyCompleted, DuplicateAnswer
from quiz_engine.models.quiz import Answer, Attempt, AttemptStatus, Difficulty, ScoreResult

logger = logging.getLogger(__name__)

GUEST_QUIZ_ID = "guest"


class InMemoryAttemptStore(AttemptStore):
    def __init__(self, ttl_minutes: int, clock: Callable[[], float] = time.monotonic):
        self._ttl_seconds = ttl_minutes * 60
        self._clock = clock
        self._attempts: Dict[str, Attempt] = {}
        self._pairs: Dict[Tuple[str, str], str] = {}
        self._touched: Dict[str, float] = {}

    def __len__(self) -> int:
        self.sweep()
        return len(self._attempts)

    def sweep(self) -> int:
        """Drop sessions idle for longer than the TTL. Returns how many were dropped."""
        cutoff = self._clock() - self._ttl_seconds
        stale = [aid for aid, touched in self._touched.items() if touched < cutoff]
        for attempt_id in stale:
            self._forget(attempt_id)
        if stale:
            logger.info("Expired %d idle guest session(s)", len(stale))
        return len(stale)

    def _forget(self, attempt_id: str) -> None:
        attempt = self._attempts.pop(attempt_id, None)
        self._touched.pop(attempt_id, None)
        if attempt is not None:
            self._pairs.pop((attempt.quiz_id, attempt.student_id), None)

    def _touch(self, attempt_id: str) -> None:
        self._touched[attempt_id] = self._clock()

    def _live(self, attempt_id: str) -> Optional[Attempt]:
        self.sweep()
        return self._attempts.get(attempt_id)

    # No awaits between check and insert, so each method is atomic on the event loop.

    async def create_attempt(self, attempt: Attempt) -> Attempt:
        self.sweep()
        pair = (attempt.quiz_id, attempt.student_id)
        if pair in self._pairs:
            raise AlreadyAttempted(attempt.quiz_id, attempt.student_id, self._pairs[pair])
        self._attempts[attempt.id] = attempt.model_copy(deep=True)
        self._pairs[pair] = attempt.id
        self._touch(attempt.id)
        return attempt

    async def get_attempt(self, attempt_id: str) -> Optional[Attempt]:
        attempt = self._live(attempt_id)
        return attempt.model_copy(deep=True) if attempt else None

    async def record_answer(
        self,
        attempt_id: str,
        answer: Answer,
        difficulty: Difficulty,
        next_question_id: Optional[str],
        question_number: int,
    ) -> None:
        attempt = self._live(attempt_id)
        if attempt is None or attempt.is_completed:
            raise AttemptAlreadyCompleted(attempt_id)
        if any(a.question_id == answer.question_id for a in attempt.answers):
            raise DuplicateAnswer(attempt_id, answer.question_id)
        attempt.answers.append(answer)
        attempt.current_difficulty = Difficulty(difficulty)
        attempt.current_question_id = next_question_id
        attempt.question_number = question_number
        self._touch(attempt_id)

    async def mark_completed(self, attempt_id, result: ScoreResult, completed_at) -> bool:
        attempt = self._live(attempt_id)
        if attempt is None or attempt.is_completed:
            return False
        attempt.status = AttemptStatus.COMPLETED
        attempt.completed_at = completed_at
        attempt.current_question_id = None
        attempt.score = result.correct_count
        attempt.total_questions = result.total_count
        attempt.percentage = result.percentage
        self._touch(attempt_id)
        return True

    async def save_recommendations(self, attempt_id: str, recommendations: List[str]) -> None:
        attempt = self._live(attempt_id)
        if attempt is not None:
            attempt.recommendations = list(recommendations)

    async def delete_attempt(self, attempt_id: str) -> bool:
        if self._live(attempt_id) is None:
            return False
        self._forget(attempt_id)
        return True


guest_store = InMemoryAttemptStore(ttl_minutes=settings.guest_session_ttl_minutes)
