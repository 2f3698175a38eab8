from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .lessons import Lesson
from .models import AuthUser, DailyStats, LessonProgress


def today() -> str:
    return date.today().isoformat()


def get_lesson_progress(db: Session, username: str, lesson_id: int) -> Optional[LessonProgress]:
    return (
        db.query(LessonProgress)
        .filter(LessonProgress.username == username, LessonProgress.lesson_id == lesson_id)
        .first()
    )


def list_progress(db: Session, username: str) -> List[LessonProgress]:
    return db.query(LessonProgress).filter(LessonProgress.username == username).all()


def get_daily_stats(db: Session, username: str, day: str) -> Optional[DailyStats]:
    return db.query(DailyStats).filter(DailyStats.username == username, DailyStats.date == day).first()


def _bump_streak(user: AuthUser, day: str) -> None:
    if user.last_active_date == day:
        return
    yesterday = (date.fromisoformat(day) - timedelta(days=1)).isoformat()
    if user.last_active_date == yesterday:
        user.streak = (user.streak or 0) + 1
    else:
        user.streak = 1
    user.last_active_date = day


def record_completion(
    db: Session,
    username: str,
    lesson: Lesson,
    percentage: int,
    time_spent: int,
    pass_percent: int,
) -> Dict[str, Any]:
    """Record one attempt at a lesson and award XP when it is passed.

    XP is the lesson reward scaled by the percentage; a passed attempt also
    counts towards today's stats and the user's streak.
    """
    percentage = max(0, min(100, int(percentage)))
    passed = percentage >= pass_percent
    xp_earned = round((lesson.xp_reward or 10) * percentage / 100) if passed else 0

    row = get_lesson_progress(db, username, lesson.id)
    if row is None:
        row = LessonProgress(username=username, lesson_id=lesson.id, attempts=0, time_spent=0)
        db.add(row)
    row.attempts = (row.attempts or 0) + 1
    row.completed = passed
    row.score = percentage
    row.time_spent = (row.time_spent or 0) + max(0, int(time_spent))
    row.last_attempt = datetime.utcnow()

    if passed:
        day = today()
        user = db.get(AuthUser, username)
        if user is not None:
            user.total_xp = (user.total_xp or 0) + xp_earned
            _bump_streak(user, day)
        stats = get_daily_stats(db, username, day)
        if stats is None:
            stats = DailyStats(username=username, date=day, lessons_completed=0, xp_earned=0, time_spent=0)
            db.add(stats)
        stats.lessons_completed = (stats.lessons_completed or 0) + 1
        stats.xp_earned = (stats.xp_earned or 0) + xp_earned
        stats.time_spent = (stats.time_spent or 0) + max(0, int(time_spent))

    db.commit()
    return {
        "completed": passed,
        "score": percentage,
        "xp_earned": xp_earned,
        "passed": passed,
        "attempts": row.attempts,
    }


def overall_stats(db: Session, username: str) -> Dict[str, int]:
    user = db.get(AuthUser, username)
    completed = sum(1 for p in list_progress(db, username) if p.completed)
    return {
        "total_xp": (user.total_xp or 0) if user else 0,
        "lessons_completed": completed,
        "streak": (user.streak or 0) if user else 0,
    }
