from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from quiz_engine.db.database import get_db
from quiz_engine.models.quiz import (
    AtRiskReport,
    ClassAnalytics,
    QuestionStats,
    QuizAnalytics,
    StudentProgress,
)
from quiz_engine.services import analytics

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("/quiz/{quiz_id}", response_model=QuizAnalytics)
async def quiz_analytics(
    quiz_id: str,
    pass_threshold: Optional[float] = Query(None, ge=0, le=100),
    db=Depends(get_db),
):
    return await analytics.get_quiz_analytics(db, quiz_id, pass_threshold)


@router.get("/quiz/{quiz_id}/questions", response_model=List[QuestionStats])
async def quiz_question_analysis(quiz_id: str, db=Depends(get_db)):
    """Correct rate per question, to spot questions that are harder than labelled."""
    return await analytics.get_question_difficulty_analysis(db, quiz_id)


@router.get("/class/{class_id}", response_model=ClassAnalytics)
async def class_analytics(class_id: str, db=Depends(get_db)):
    return await analytics.get_class_analytics(db, class_id)


@router.get("/class/{class_id}/at-risk", response_model=AtRiskReport)
async def at_risk_students(
    class_id: str,
    threshold: Optional[float] = Query(None, ge=0, le=100),
    db=Depends(get_db),
):
    return await analytics.get_at_risk_students(db, class_id, threshold)


@router.get("/class/{class_id}/students/{student_id}/progress", response_model=StudentProgress)
async def student_progress(class_id: str, student_id: str, db=Depends(get_db)):
    """Recomputed from the student's live attempts on every read."""
    return await analytics.refresh_student_progress(db, student_id, class_id)
