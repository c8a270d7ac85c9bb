"""
analytics.py - Quiz and class analytics over persisted attempts

Provides:
- summarize_quiz / question_correct_rates / pass_rate - quiz-level metrics
- summarize_class - class-level metrics across the class's quizzes
- compute_progress / find_at_risk - per-student running averages
- get_* / refresh_student_progress - the same, loaded from the database;
  progress is recomputed on every call and the stored row is overwritten

Everything is recomputed on demand from attempt rows; nothing here writes to
attempts or answers. Scores are percentages (0-100) rounded to 2 decimals;
averages and pass rates only consider completed attempts.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional

import aiosqlite

from quiz_engine.config import settings
from quiz_engine.db import attempts as store
from quiz_engine.db import quizzes as quiz_db
from quiz_engine.errors import QuizNotFound
from quiz_engine.models.quiz import (
    AtRiskReport,
    AtRiskStudent,
    Attempt,
    ClassAnalytics,
    Difficulty,
    QuestionStats,
    QuizAnalytics,
    QuizPerformance,
    StudentProgress,
)

logger = logging.getLogger(__name__)


def _mean(values: List[float]) -> float:
    return round(sum(values) / len(values), 2) if values else 0.0


def _completed_scores(attempts: Iterable[Attempt]) -> List[float]:
    return [a.percentage or 0.0 for a in attempts if a.is_completed]


def pass_rate(percentages: List[float], threshold: float) -> float:
    """Share of scores at or above `threshold`, as a percentage."""
    if not percentages:
        return 0.0
    passed = sum(1 for p in percentages if p >= threshold)
    return round(passed / len(percentages) * 100, 2)


def question_correct_rates(
    answers: Iterable[Dict[str, Any]],
    question_index: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[QuestionStats]:
    """Per-question correctness from graded answers.

    Questions present in `question_index` but never answered are reported
    with zero answers, so unanswered questions stay visible.
    """
    question_index = question_index or {}
    tallies: "OrderedDict[str, Dict[str, Any]]" = OrderedDict(
        (qid, {"correct": 0, "total": 0, "difficulty": info.get("difficulty")})
        for qid, info in sorted(question_index.items())
    )

    for answer in answers:
        qid = answer["question_id"]
        if qid not in tallies:
            tallies[qid] = {"correct": 0, "total": 0, "difficulty": answer.get("difficulty")}
        tallies[qid]["total"] += 1
        if answer["is_correct"]:
            tallies[qid]["correct"] += 1

    stats = []
    for qid, t in tallies.items():
        total = t["total"]
        stats.append(QuestionStats(
            question_id=qid,
            prompt=question_index.get(qid, {}).get("prompt"),
            difficulty=Difficulty(t["difficulty"]) if t["difficulty"] else None,
            correct_count=t["correct"],
            total_answers=total,
            correct_rate=round(t["correct"] / total, 4) if total else 0.0,
            correct_percentage=round(t["correct"] / total * 100, 2) if total else 0.0,
        ))
    return stats


def summarize_quiz(
    quiz_id: str,
    attempts: List[Attempt],
    answers: Iterable[Dict[str, Any]] = (),
    pass_threshold: Optional[float] = None,
    question_index: Optional[Dict[str, Dict[str, Any]]] = None,
) -> QuizAnalytics:
    threshold = settings.pass_threshold if pass_threshold is None else pass_threshold
    total = len(attempts)
    scores = _completed_scores(attempts)

    return QuizAnalytics(
        quiz_id=quiz_id,
        total_attempts=total,
        completed_attempts=len(scores),
        completion_rate=round(len(scores) / total * 100, 2) if total else 0.0,
        average_score=_mean(scores),
        highest_score=max(scores) if scores else 0.0,
        lowest_score=min(scores) if scores else 0.0,
        pass_threshold=threshold,
        pass_rate=pass_rate(scores, threshold),
        question_stats=question_correct_rates(answers, question_index),
    )


def summarize_class(
    class_id: str,
    quizzes: List[Dict[str, Any]],
    attempts: List[Attempt],
) -> ClassAnalytics:
    scores = _completed_scores(attempts)

    performance = []
    for quiz in quizzes:
        quiz_scores = _completed_scores(a for a in attempts if a.quiz_id == quiz["id"])
        performance.append(QuizPerformance(
            quiz_id=quiz["id"],
            title=quiz.get("title"),
            completed_attempts=len(quiz_scores),
            average_score=_mean(quiz_scores),
        ))

    return ClassAnalytics(
        class_id=class_id,
        total_quizzes=len(quizzes),
        total_attempts=len(attempts),
        completed_attempts=len(scores),
        total_students=len({a.student_id for a in attempts}),
        average_score=_mean(scores),
        quiz_performance=performance,
    )


def compute_progress(student_id: str, class_id: str, attempts: Iterable[Attempt]) -> StudentProgress:
    completed = [a for a in attempts if a.student_id == student_id and a.is_completed]
    last = max((a.completed_at for a in completed if a.completed_at), default=None)
    return StudentProgress(
        student_id=student_id,
        class_id=class_id,
        quizzes_attempted=len(completed),
        average_score=_mean([a.percentage or 0.0 for a in completed]),
        last_attempt_at=last,
    )


def find_at_risk(attempts: Iterable[Attempt], threshold: float) -> List[AtRiskStudent]:
    """Students whose average over completed attempts is below `threshold`, worst first.

    Students without a completed attempt have no average and are not flagged.
    """
    by_student: Dict[str, List[Attempt]] = {}
    for attempt in attempts:
        if attempt.is_completed:
            by_student.setdefault(attempt.student_id, []).append(attempt)

    flagged = []
    for student_id, student_attempts in by_student.items():
        average = _mean([a.percentage or 0.0 for a in student_attempts])
        if average < threshold:
            flagged.append(AtRiskStudent(
                student_id=student_id,
                average_score=average,
                attempts_count=len(student_attempts),
                last_attempt_at=max(
                    (a.completed_at for a in student_attempts if a.completed_at), default=None
                ),
            ))

    return sorted(flagged, key=lambda s: (s.average_score, s.student_id))


# ── Database-backed entry points ─────────────────────────────────────

async def get_quiz_analytics(
    db: aiosqlite.Connection, quiz_id: str, pass_threshold: Optional[float] = None
) -> QuizAnalytics:
    if await quiz_db.get_quiz(db, quiz_id) is None:
        raise QuizNotFound(quiz_id)

    attempts = await store.list_quiz_attempts(db, quiz_id)
    answers = await store.list_quiz_answers(db, quiz_id)
    question_index = await quiz_db.get_question_index(db, quiz_id)
    return summarize_quiz(quiz_id, attempts, answers, pass_threshold, question_index)


async def get_question_difficulty_analysis(db: aiosqlite.Connection, quiz_id: str) -> List[QuestionStats]:
    if await quiz_db.get_quiz(db, quiz_id) is None:
        raise QuizNotFound(quiz_id)

    answers = await store.list_quiz_answers(db, quiz_id)
    question_index = await quiz_db.get_question_index(db, quiz_id)
    return question_correct_rates(answers, question_index)


async def get_class_analytics(db: aiosqlite.Connection, class_id: str) -> ClassAnalytics:
    quizzes = await quiz_db.get_quizzes_by_class(db, class_id)
    attempts = await store.list_class_attempts(db, class_id)
    return summarize_class(class_id, quizzes, attempts)


async def get_at_risk_students(
    db: aiosqlite.Connection, class_id: str, threshold: Optional[float] = None
) -> AtRiskReport:
    threshold = settings.at_risk_threshold if threshold is None else threshold
    attempts = await store.list_class_attempts(db, class_id)
    students = find_at_risk(attempts, threshold)
    logger.info(f"Class {class_id}: {len(students)} student(s) below {threshold}%")
    return AtRiskReport(class_id=class_id, threshold=threshold, students=students)


async def refresh_student_progress(db: aiosqlite.Connection, student_id: str, class_id: str) -> StudentProgress:
    """Recompute a student's class progress from scratch and store the snapshot."""
    attempts = await store.list_class_attempts(db, class_id, student_id=student_id)
    progress = compute_progress(student_id, class_id, attempts)
    await store.upsert_student_progress(db, progress)
    return progress
