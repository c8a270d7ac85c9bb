"""
quiz_scorer.py - Answer grading and attempt scoring

Provides:
- grade_answer(question, submitted) - Server-side correctness for one answer
- score_answers(answers) - Correct count, total and percentage for an attempt

Correctness is always recomputed here from the stored question; whatever the
client claims about its own answer is ignored.
"""

import re
from typing import Iterable, Optional, Union

from quiz_engine.models.quiz import Answer, Question, QuestionType, ScoreResult

AnswerValue = Union[bool, int, str]

TRUE_VARIANTS = {"true", "t", "yes", "y", "benar"}
FALSE_VARIANTS = {"false", "f", "no", "n", "salah"}


def normalize_answer(answer) -> str:
    """Normalize an answer for comparison."""
    if answer is None:
        return ""
    return str(answer).strip().lower()


def _normalize_punctuation(text: str) -> str:
    """Remove trailing punctuation and collapse whitespace."""
    text = re.sub(r'[.,!?;:]+$', '', text)
    text = re.sub(r'\s+', ' ', text).strip()
    return text


def stringify_answer(value: AnswerValue) -> str:
    """Canonical string form of a submitted value, as stored on the Answer."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _option_index(options: list[str], value: AnswerValue) -> Optional[int]:
    """Resolve a submitted value to an option index.

    Integers are indexes. Strings match option text first and are only read
    as an index when no option has that text (options like "2", "3", "4").
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 0 <= value < len(options) else None

    norm = normalize_answer(value)
    for i, option in enumerate(options):
        if normalize_answer(option) == norm:
            return i
    if norm.isdigit():
        idx = int(norm)
        return idx if idx < len(options) else None
    return None


def _as_truth(options: list[str], value: AnswerValue) -> Optional[bool]:
    """Map a true/false submission to a boolean; option 0 is the "true" side."""
    if isinstance(value, bool):
        return value
    norm = normalize_answer(value)
    if norm in TRUE_VARIANTS:
        return True
    if norm in FALSE_VARIANTS:
        return False
    idx = _option_index(options, value)
    if idx is None:
        return None
    return idx == 0


def grade_answer(question: Question, submitted: AnswerValue) -> bool:
    """Return True when `submitted` matches the question's correct answer."""
    q_type = question.question_type
    options = list(question.options or [])

    if q_type == QuestionType.MULTIPLE_CHOICE:
        expected = _option_index(options, question.correct_answer)
        actual = _option_index(options, submitted)
        if expected is None:
            # Correct answer authored as free text that matches no option
            return normalize_answer(submitted) == normalize_answer(question.correct_answer)
        return actual is not None and actual == expected

    if q_type == QuestionType.TRUE_FALSE:
        expected = _as_truth(options, question.correct_answer)
        actual = _as_truth(options, submitted)
        return expected is not None and actual is not None and actual == expected

    # Short answer: the canonical string, or the single stored option
    expected_text = question.correct_answer
    if isinstance(expected_text, int) and options:
        expected_text = options[0]
    student_norm = normalize_answer(stringify_answer(submitted))
    correct_norm = normalize_answer(expected_text)
    if not correct_norm:
        return False
    if student_norm == correct_norm:
        return True
    return _normalize_punctuation(student_norm) == _normalize_punctuation(correct_norm)


def score_answers(answers: Iterable[Answer]) -> ScoreResult:
    """Score a set of graded answers.

    percentage = correct / total * 100, rounded to 2 decimals; an empty
    answer set scores 0 rather than dividing by zero.
    """
    answers = list(answers)
    total = len(answers)
    correct = sum(1 for a in answers if a.is_correct)
    percentage = round(correct / total * 100, 2) if total > 0 else 0.0

    return ScoreResult(
        correct_count=correct,
        total_count=total,
        percentage=percentage,
        earned_points=sum(a.points_awarded for a in answers),
        possible_points=sum(a.points_possible for a in answers),
    )
