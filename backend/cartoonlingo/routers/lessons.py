from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..lessons import Lesson, catalog
from ..progress import get_daily_stats, get_lesson_progress, list_progress, overall_stats, record_completion, today
from ..settings import settings
from .auth import User, get_current_user


router = APIRouter(tags=["lessons"])

XP_PER_CORRECT_ANSWER = 10


class AnswerRequest(BaseModel):
    lesson_id: int
    question_id: str
    answer: str
    time_spent: Optional[int] = None


class CompleteRequest(BaseModel):
    lesson_id: int
    score: int = Field(ge=0)
    total_questions: int = Field(gt=0)
    time_spent: int = Field(default=0, ge=0)


def _lesson_or_404(lesson_id: int) -> Lesson:
    lesson = catalog.get(lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    return lesson


def _lesson_payload(lesson: Lesson, progress_row) -> Dict[str, Any]:
    payload = lesson.model_dump()
    # Never leak answers with the lesson listing
    for q in payload["questions"]:
        q.pop("correct_answer", None)
        q.pop("explanation", None)
    payload.update(
        {
            "completed": bool(progress_row.completed) if progress_row else False,
            "score": progress_row.score if progress_row else 0,
            "attempts": progress_row.attempts if progress_row else 0,
        }
    )
    return payload


@router.get("/lessons")
async def list_lessons(category: Optional[str] = None, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lessons = catalog.by_category(category) if category else catalog.all()
    progress_by_lesson = {p.lesson_id: p for p in list_progress(db, user.username)}
    return [_lesson_payload(l, progress_by_lesson.get(l.id)) for l in lessons]


@router.get("/lessons/{lesson_id}")
async def get_lesson(lesson_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lesson = _lesson_or_404(lesson_id)
    return _lesson_payload(lesson, get_lesson_progress(db, user.username, lesson_id))


@router.post("/lessons/answer")
async def submit_answer(req: AnswerRequest, user: User = Depends(get_current_user)):
    lesson = _lesson_or_404(req.lesson_id)
    question = next((q for q in lesson.questions if q.id == req.question_id), None)
    if question is None:
        raise HTTPException(status_code=404, detail="Question not found")
    is_correct = question.correct_answer == req.answer
    return {
        "correct": is_correct,
        "correct_answer": question.correct_answer,
        "explanation": question.explanation,
        "xp_earned": XP_PER_CORRECT_ANSWER if is_correct else 0,
    }


@router.post("/lessons/complete")
async def complete_lesson(req: CompleteRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    lesson = _lesson_or_404(req.lesson_id)
    if req.score > req.total_questions:
        raise HTTPException(status_code=400, detail="score cannot exceed total_questions")
    percentage = round(req.score / req.total_questions * 100)
    return record_completion(db, user.username, lesson, percentage, req.time_spent, settings.quiz_pass_percent)


@router.get("/progress")
async def get_progress(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = list_progress(db, user.username)
    return {
        "progress": [
            {
                "lesson_id": p.lesson_id,
                "completed": p.completed,
                "score": p.score,
                "attempts": p.attempts,
                "time_spent": p.time_spent,
                "last_attempt": p.last_attempt.isoformat() if p.last_attempt else None,
            }
            for p in rows
        ],
        **overall_stats(db, user.username),
    }


@router.get("/stats/daily")
async def daily_stats(date: Optional[str] = None, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    day = date or today()
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", day):
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD")
    stats = get_daily_stats(db, user.username, day)
    if stats is None:
        return {"date": day, "lessons_completed": 0, "xp_earned": 0, "time_spent": 0}
    return {
        "date": day,
        "lessons_completed": stats.lessons_completed,
        "xp_earned": stats.xp_earned,
        "time_spent": stats.time_spent,
    }
