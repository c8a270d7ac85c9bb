from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


# Option pairs that mark a two-option question as true/false
TRUE_FALSE_PAIRS = {("true", "false"), ("benar", "salah"), ("yes", "no")}


def detect_question_type(options: Optional[list[str]]) -> QuestionType:
    """Infer the question type from its option list.

    No options (or a single stored answer) means short answer; a recognised
    two-option pair means true/false; anything else is multiple choice.
    """
    if not options or len(options) == 1:
        return QuestionType.SHORT_ANSWER
    normalized = tuple(str(o).strip().lower() for o in options)
    if normalized in TRUE_FALSE_PAIRS:
        return QuestionType.TRUE_FALSE
    return QuestionType.MULTIPLE_CHOICE


# ── Questions ────────────────────────────────────────────────────────

class PublicQuestion(BaseModel):
    """A question as shown to the student: never carries the correct answer."""

    id: str
    prompt: str
    options: Optional[list[str]] = None
    question_type: QuestionType
    difficulty: Difficulty
    subject: str = "general"
    points: float = 1.0


class Question(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    options: Optional[list[str]] = None
    # Option index for multiple choice, canonical string otherwise
    correct_answer: Union[int, str]
    difficulty: Difficulty
    subject: str = "general"
    points: float = 1.0
    explanation: str = ""

    @property
    def question_type(self) -> QuestionType:
        return detect_question_type(self.options)

    def to_public(self) -> PublicQuestion:
        return PublicQuestion(
            id=self.id,
            prompt=self.prompt,
            options=list(self.options) if self.options else None,
            question_type=self.question_type,
            difficulty=self.difficulty,
            subject=self.subject,
            points=self.points,
        )


class QuizConfig(BaseModel):
    id: str
    class_id: Optional[str] = None
    title: str = "Quiz"
    question_count: int = Field(default=10, ge=1)
    starting_difficulty: Difficulty = Difficulty.EASY
    time_limit_minutes: Optional[int] = Field(default=None, ge=1)


# ── Attempts ─────────────────────────────────────────────────────────

class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Answer(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    submitted_value: str
    is_correct: bool
    difficulty: Difficulty
    points_awarded: float = 0.0
    points_possible: float = 1.0
    answered_at: datetime


class Attempt(BaseModel):
    id: str
    quiz_id: str
    student_id: str
    class_id: Optional[str] = None
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    current_difficulty: Difficulty = Difficulty.EASY
    current_question_id: Optional[str] = None
    question_number: int = 1
    question_count: int
    answers: list[Answer] = []
    started_at: datetime
    deadline: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: Optional[int] = None
    total_questions: Optional[int] = None
    percentage: Optional[float] = None
    recommendations: list[str] = []

    @property
    def is_completed(self) -> bool:
        return self.status == AttemptStatus.COMPLETED

    @property
    def awaiting_completion(self) -> bool:
        """All asked questions are answered but the completion write never landed."""
        return not self.is_completed and self.current_question_id is None

    def asked_question_ids(self) -> set[str]:
        asked = {a.question_id for a in self.answers}
        if self.current_question_id:
            asked.add(self.current_question_id)
        return asked

    def is_expired(self, now: datetime) -> bool:
        return not self.is_completed and self.deadline is not None and now >= self.deadline


class ScoreResult(BaseModel):
    correct_count: int
    total_count: int
    percentage: float
    earned_points: float = 0.0
    possible_points: float = 0.0


class StartedAttempt(BaseModel):
    attempt_id: str
    quiz_id: str
    student_id: str
    question_number: int = 1
    question_count: int
    current_question: PublicQuestion
    started_at: datetime
    deadline: Optional[datetime] = None


class NextQuestion(BaseModel):
    status: Literal["next_question"] = "next_question"
    attempt_id: str
    correct: bool
    question_number: int
    next_question: PublicQuestion


class AttemptCompleted(BaseModel):
    status: Literal["completed"] = "completed"
    attempt_id: str
    correct: bool
    result: ScoreResult
    # True when the question pool ran out before question_count was reached
    exhausted: bool = False


SubmitResult = Annotated[Union[NextQuestion, AttemptCompleted], Field(discriminator="status")]


# ── Request bodies ───────────────────────────────────────────────────

AnswerValue = Union[bool, int, str]


class StartAttemptRequest(BaseModel):
    quiz_id: str = Field(min_length=1)
    student_id: str = Field(min_length=1)


class SubmitAnswerRequest(BaseModel):
    question_id: str = Field(min_length=1)
    answer: AnswerValue


class GuestAnswerRequest(SubmitAnswerRequest):
    session_id: str = Field(min_length=1)


# ── Analytics ────────────────────────────────────────────────────────

class QuestionStats(BaseModel):
    question_id: str
    prompt: Optional[str] = None
    difficulty: Optional[Difficulty] = None
    correct_count: int = 0
    total_answers: int = 0
    correct_rate: float = 0.0
    correct_percentage: float = 0.0


class QuizAnalytics(BaseModel):
    quiz_id: str
    total_attempts: int = 0
    completed_attempts: int = 0
    completion_rate: float = 0.0
    average_score: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    pass_threshold: float
    pass_rate: float = 0.0
    question_stats: list[QuestionStats] = []


class QuizPerformance(BaseModel):
    quiz_id: str
    title: Optional[str] = None
    completed_attempts: int = 0
    average_score: float = 0.0


class ClassAnalytics(BaseModel):
    class_id: str
    total_quizzes: int = 0
    total_attempts: int = 0
    completed_attempts: int = 0
    total_students: int = 0
    average_score: float = 0.0
    quiz_performance: list[QuizPerformance] = []


class StudentProgress(BaseModel):
    student_id: str
    class_id: str
    quizzes_attempted: int = 0
    average_score: float = 0.0
    last_attempt_at: Optional[datetime] = None


class AtRiskStudent(BaseModel):
    student_id: str
    average_score: float
    attempts_count: int
    last_attempt_at: Optional[datetime] = None


class AtRiskReport(BaseModel):
    class_id: str
    threshold: float
    students: list[AtRiskStudent] = []
