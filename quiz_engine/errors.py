"""Error taxonomy for the attempt engine.

Every error carries the HTTP status the API layer should answer with and the
identifiers the caller needs to act on it. Grading and scoring never raise;
all of these originate at the question repository or attempt store boundary,
or from misuse of the attempt lifecycle.
"""

from typing import Any, Dict, Optional


class QuizEngineError(Exception):
    status_code = 400
    code = "quiz_engine_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "error": self.code, **self.context}


# ── Not found ────────────────────────────────────────────────────────

class NotFound(QuizEngineError):
    status_code = 404
    code = "not_found"


class QuizNotFound(NotFound):
    code = "quiz_not_found"

    def __init__(self, quiz_id: str):
        super().__init__(f"Quiz {quiz_id} not found", quiz_id=quiz_id)


class QuestionNotFound(NotFound):
    code = "question_not_found"

    def __init__(self, question_id: str, attempt_id: Optional[str] = None):
        super().__init__(
            f"Question {question_id} not found",
            question_id=question_id,
            attempt_id=attempt_id,
        )


class AttemptNotFound(NotFound):
    code = "attempt_not_found"

    def __init__(self, attempt_id: str):
        super().__init__(f"Attempt {attempt_id} not found", attempt_id=attempt_id)


# ── Lifecycle conflicts ──────────────────────────────────────────────

class AlreadyAttempted(QuizEngineError):
    status_code = 409
    code = "already_attempted"

    def __init__(self, quiz_id: str, student_id: str, existing_attempt_id: Optional[str]):
        super().__init__(
            "Student already has an attempt for this quiz",
            quiz_id=quiz_id,
            student_id=student_id,
            existing_attempt_id=existing_attempt_id,
        )
        self.existing_attempt_id = existing_attempt_id


class AttemptAlreadyCompleted(QuizEngineError):
    status_code = 409
    code = "attempt_already_completed"

    def __init__(self, attempt_id: str, reason: str = "Attempt is already completed"):
        super().__init__(reason, attempt_id=attempt_id)


class DuplicateAnswer(QuizEngineError):
    status_code = 409
    code = "duplicate_answer"

    def __init__(self, attempt_id: str, question_id: str):
        super().__init__(
            "Question was already answered in this attempt",
            attempt_id=attempt_id,
            question_id=question_id,
        )


class QuestionNotCurrent(QuizEngineError):
    status_code = 409
    code = "question_not_current"

    def __init__(self, attempt_id: str, question_id: str, current_question_id: Optional[str]):
        super().__init__(
            "Question is not the one currently asked in this attempt",
            attempt_id=attempt_id,
            question_id=question_id,
            current_question_id=current_question_id,
        )


# ── Repository / store boundary ──────────────────────────────────────

class RepositoryExhausted(QuizEngineError):
    status_code = 422
    code = "repository_exhausted"

    def __init__(self, quiz_id: Optional[str] = None):
        super().__init__("No questions left to draw", quiz_id=quiz_id)


class StoreUnavailable(QuizEngineError):
    status_code = 503
    code = "store_unavailable"
    retryable = True

    def __init__(self, operation: str, **context: Any):
        super().__init__(f"Attempt store unavailable during {operation}", **context)
        self.operation = operation
