"""Guest quiz endpoints: the adaptive quiz without an account or database.

Sessions live in the in-memory guest store and draw from the built-in
question bank; they expire after GUEST_SESSION_TTL_MINUTES of inactivity.
"""

import uuid

from fastapi import APIRouter, BackgroundTasks, HTTPException

from quiz_engine.config import settings
from quiz_engine.models.quiz import Attempt, Difficulty, GuestAnswerRequest, QuizConfig, SubmitResult
from quiz_engine.services.attempt_engine import AttemptEngine
from quiz_engine.services.guest_sessions import GUEST_QUIZ_ID, guest_store
from quiz_engine.services.question_bank import DEFAULT_QUESTION_BANK, InMemoryQuestionRepository
from quiz_engine.services.recommendations import generate_recommendations

router = APIRouter(prefix="/api/quiz", tags=["guest-quiz"])

guest_bank = InMemoryQuestionRepository(DEFAULT_QUESTION_BANK)


async def on_guest_completed(attempt: Attempt) -> None:
    recommendations = await generate_recommendations(attempt)
    await guest_store.save_recommendations(attempt.id, recommendations)


def _engine(background_tasks: BackgroundTasks) -> AttemptEngine:
    return AttemptEngine(
        guest_store, guest_bank, on_completed=on_guest_completed, defer=background_tasks.add_task
    )


@router.post("/start", status_code=201)
async def start_guest_quiz(background_tasks: BackgroundTasks):
    quiz = QuizConfig(
        id=GUEST_QUIZ_ID,
        title="Adaptive practice quiz",
        question_count=settings.guest_question_count,
        starting_difficulty=Difficulty.EASY,
    )
    started = await _engine(background_tasks).start(quiz, student_id=f"guest-{uuid.uuid4().hex}")
    return {
        "session_id": started.attempt_id,
        "current_question": started.current_question,
        "question_number": started.question_number,
        "total_questions": started.question_count,
    }


@router.post("/answer", response_model=SubmitResult)
async def submit_guest_answer(body: GuestAnswerRequest, background_tasks: BackgroundTasks):
    return await _engine(background_tasks).submit_answer(body.session_id, body.question_id, body.answer)


@router.get("/results/{session_id}")
async def guest_quiz_results(session_id: str, background_tasks: BackgroundTasks):
    attempt = await _engine(background_tasks).get_attempt(session_id)
    if not attempt.is_completed:
        raise HTTPException(status_code=404, detail="Quiz result not found")
    return {
        "session_id": attempt.id,
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "percentage": attempt.percentage,
        "answers": [a.model_dump(mode="json") for a in attempt.answers],
        "recommendations": attempt.recommendations,
    }
