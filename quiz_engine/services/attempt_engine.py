"""
attempt_engine.py - Adaptive quiz attempt lifecycle

    start ──▶ in_progress ──(last answer / pool exhausted / complete())──▶ completed

Provides:
- AttemptEngine.start(quiz, student_id) - create the attempt and ask question #1
- AttemptEngine.submit_answer(attempt_id, question_id, value) - grade, record,
  then return the next question or the completion result
- AttemptEngine.complete(attempt_id) - idempotent finalization
- AttemptEngine.get_attempt / delete_attempt

The engine holds no attempt state of its own; everything lives in the injected
AttemptStore, so the same engine drives durable (SQLite) and guest (memory)
attempts. Operations on one attempt are serialized by AttemptLocks; the store
additionally rejects duplicate answers and double completion on its own.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from quiz_engine.db.attempts import AttemptStore, utcnow
from quiz_engine.errors import (
    AttemptAlreadyCompleted,
    AttemptNotFound,
    DuplicateAnswer,
    QuestionNotCurrent,
    QuestionNotFound,
    RepositoryExhausted,
)
from quiz_engine.models.quiz import (
    Answer,
    Attempt,
    AttemptCompleted,
    NextQuestion,
    QuizConfig,
    ScoreResult,
    StartedAttempt,
)
from quiz_engine.services.difficulty_engine import next_difficulty
from quiz_engine.services.question_bank import QuestionRepository
from quiz_engine.services.quiz_scorer import AnswerValue, grade_answer, score_answers, stringify_answer

logger = logging.getLogger(__name__)

# Called once per attempt after it becomes completed; owns its own side effects
CompletionHook = Callable[[Attempt], Awaitable[None]]
# Schedules hook(attempt) to run later, e.g. BackgroundTasks.add_task
Deferrer = Callable[..., None]


class AttemptLocks:
    """Per-attempt mutual exclusion for the current process.

    Locks exist only while someone holds or waits on them, so the registry
    stays as large as the number of attempts being worked on right now.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, attempt_id: str):
        lock = self._locks.get(attempt_id)
        if lock is None:
            lock = self._locks[attempt_id] = asyncio.Lock()
        self._users[attempt_id] = self._users.get(attempt_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[attempt_id] -= 1
            if self._users[attempt_id] == 0:
                del self._users[attempt_id]
                del self._locks[attempt_id]


attempt_locks = AttemptLocks()


class AttemptEngine:
    def __init__(
        self,
        store: AttemptStore,
        questions: QuestionRepository,
        on_completed: Optional[CompletionHook] = None,
        locks: Optional[AttemptLocks] = None,
        clock: Callable[[], datetime] = utcnow,
        defer: Optional[Deferrer] = None,
    ):
        self.store = store
        self.questions = questions
        self.on_completed = on_completed
        self.locks = locks if locks is not None else attempt_locks
        self.clock = clock
        self.defer = defer

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self, quiz: QuizConfig, student_id: str) -> StartedAttempt:
        """Create an attempt for (quiz, student) and draw its first question.

        Raises AlreadyAttempted (with the existing attempt id) when the pair
        already has a live attempt, and RepositoryExhausted when the quiz has
        no questions at all; no attempt is created in either case.
        """
        try:
            first = await self.questions.get_random_by_difficulty(quiz.starting_difficulty, ())
        except RepositoryExhausted:
            logger.warning(f"Quiz {quiz.id} has no questions, refusing to start attempt")
            raise RepositoryExhausted(quiz_id=quiz.id) from None

        now = self.clock()
        deadline = now + timedelta(minutes=quiz.time_limit_minutes) if quiz.time_limit_minutes else None
        attempt = Attempt(
            id=uuid.uuid4().hex,
            quiz_id=quiz.id,
            student_id=student_id,
            class_id=quiz.class_id,
            current_difficulty=quiz.starting_difficulty,
            current_question_id=first.id,
            question_number=1,
            question_count=quiz.question_count,
            started_at=now,
            deadline=deadline,
        )
        await self.store.create_attempt(attempt)
        logger.info(f"Attempt {attempt.id} started: quiz={quiz.id} student={student_id}")

        return StartedAttempt(
            attempt_id=attempt.id,
            quiz_id=quiz.id,
            student_id=student_id,
            question_number=1,
            question_count=quiz.question_count,
            current_question=first.to_public(),
            started_at=now,
            deadline=deadline,
        )

    async def submit_answer(self, attempt_id: str, question_id: str, value: AnswerValue):
        """Grade and record an answer, then advance or complete the attempt.

        Returns NextQuestion while questions remain, AttemptCompleted once the
        configured count is reached or the question pool runs out. The next
        question is drawn before anything is written, and the answer and the
        cursor move land in one store write, so a failed submit can be retried.
        """
        async with self._exclusive(attempt_id) as completed:
            attempt = await self._load(attempt_id)
            if attempt.is_completed:
                raise AttemptAlreadyCompleted(attempt_id)
            if attempt.is_expired(self.clock()):
                await self._finalize(attempt_id, completed)
                raise AttemptAlreadyCompleted(
                    attempt_id, "Time limit elapsed; attempt completed with the answers recorded so far"
                )

            previous = next((a for a in attempt.answers if a.question_id == question_id), None)
            if previous is not None:
                if attempt.awaiting_completion and previous is attempt.answers[-1]:
                    # Retry of the last answer after the completion write failed
                    finished = await self._finalize(attempt_id, completed)
                    return AttemptCompleted(
                        attempt_id=attempt_id,
                        correct=previous.is_correct,
                        result=self._result(finished),
                        exhausted=len(finished.answers) < finished.question_count,
                    )
                raise DuplicateAnswer(attempt_id, question_id)
            if question_id != attempt.current_question_id:
                raise QuestionNotCurrent(attempt_id, question_id, attempt.current_question_id)

            try:
                question = await self.questions.get_by_id(question_id)
            except QuestionNotFound:
                raise QuestionNotFound(question_id, attempt_id=attempt_id) from None

            correct = grade_answer(question, value)
            answer = Answer(
                question_id=question.id,
                submitted_value=stringify_answer(value),
                is_correct=correct,
                difficulty=question.difficulty,
                points_awarded=question.points if correct else 0.0,
                points_possible=question.points,
                answered_at=self.clock(),
            )

            difficulty = next_difficulty(correct, attempt.current_difficulty)
            answered = len(attempt.answers) + 1
            following = None
            exhausted = False
            if answered < attempt.question_count:
                try:
                    following = await self.questions.get_random_by_difficulty(
                        difficulty, attempt.asked_question_ids()
                    )
                except RepositoryExhausted:
                    logger.warning(
                        f"Question pool exhausted for attempt {attempt_id} (quiz {attempt.quiz_id}) "
                        f"after {answered} of {attempt.question_count} questions"
                    )
                    exhausted = True

            number = attempt.question_number + 1 if following else attempt.question_number
            await self.store.record_answer(
                attempt_id, answer, difficulty, following.id if following else None, number
            )

            if following is None:
                finished = await self._finalize(attempt_id, completed)
                return AttemptCompleted(
                    attempt_id=attempt_id,
                    correct=correct,
                    result=self._result(finished),
                    exhausted=exhausted,
                )

            return NextQuestion(
                attempt_id=attempt_id,
                correct=correct,
                question_number=number,
                next_question=following.to_public(),
            )

    async def complete(self, attempt_id: str) -> Attempt:
        """Finalize an attempt. Completing a completed attempt returns it unchanged."""
        async with self._exclusive(attempt_id) as completed:
            attempt = await self._load(attempt_id)
            if attempt.is_completed:
                return attempt
            return await self._finalize(attempt_id, completed)

    async def get_attempt(self, attempt_id: str) -> Attempt:
        """Fetch an attempt, finalizing it first if its time limit has elapsed
        or its completion write never landed."""
        attempt = await self._load(attempt_id)
        if attempt.is_expired(self.clock()) or attempt.awaiting_completion:
            return await self.complete(attempt_id)
        return attempt

    async def delete_attempt(self, attempt_id: str) -> None:
        async with self.locks.hold(attempt_id):
            if not await self.store.delete_attempt(attempt_id):
                raise AttemptNotFound(attempt_id)
        logger.info(f"Attempt {attempt_id} deleted")

    # ── Internals ────────────────────────────────────────────────────

    @asynccontextmanager
    async def _exclusive(self, attempt_id: str):
        """Hold the attempt's lock; completion hooks run once it is released."""
        completed: List[Attempt] = []
        try:
            async with self.locks.hold(attempt_id):
                yield completed
        finally:
            for attempt in completed:
                await self._after_completion(attempt)

    async def _load(self, attempt_id: str) -> Attempt:
        attempt = await self.store.get_attempt(attempt_id)
        if attempt is None:
            raise AttemptNotFound(attempt_id)
        return attempt

    @staticmethod
    def _result(attempt: Attempt) -> ScoreResult:
        return score_answers(attempt.answers)

    async def _finalize(self, attempt_id: str, completed: List[Attempt]) -> Attempt:
        attempt = await self._load(attempt_id)
        result = score_answers(attempt.answers)
        transitioned = await self.store.mark_completed(attempt_id, result, self.clock())
        finished = await self._load(attempt_id)

        if transitioned:
            logger.info(
                f"Attempt {attempt_id} completed: {result.correct_count}/{result.total_count} "
                f"({result.percentage:.2f}%)"
            )
            completed.append(finished)
        return finished

    async def _after_completion(self, attempt: Attempt) -> None:
        if self.on_completed is None:
            return
        if self.defer is not None:
            self.defer(self._run_completion_hook, attempt)
        else:
            await self._run_completion_hook(attempt)

    async def _run_completion_hook(self, attempt: Attempt) -> None:
        try:
            await self.on_completed(attempt)
        except Exception as e:
            logger.warning(f"Completion hook failed for attempt {attempt.id}: {e}")
