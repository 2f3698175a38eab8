from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Integer, UniqueConstraint
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	# Gamification
	total_xp = Column(Integer, default=0, nullable=False)
	streak = Column(Integer, default=0, nullable=False)
	hearts = Column(Integer, default=5, nullable=False)
	daily_goal = Column(Integer, default=15, nullable=False)
	last_active_date = Column(String(10), nullable=True)  # YYYY-MM-DD
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	@property
	def level(self) -> int:
		# one level per 250 XP
		return 1 + (self.total_xp or 0) // 250


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LessonProgress(Base):
	__tablename__ = "lesson_progress"
	__table_args__ = (UniqueConstraint("username", "lesson_id", name="uq_progress_user_lesson"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), nullable=False, index=True)
	lesson_id = Column(Integer, nullable=False)
	completed = Column(Boolean, default=False, nullable=False)
	score = Column(Integer, default=0, nullable=False)  # percentage
	time_spent = Column(Integer, default=0, nullable=False)  # seconds
	attempts = Column(Integer, default=0, nullable=False)
	last_attempt = Column(DateTime, default=datetime.utcnow, nullable=False)


class DailyStats(Base):
	__tablename__ = "daily_stats"
	__table_args__ = (UniqueConstraint("username", "date", name="uq_stats_user_date"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), nullable=False, index=True)
	date = Column(String(10), nullable=False)  # YYYY-MM-DD
	lessons_completed = Column(Integer, default=0, nullable=False)
	xp_earned = Column(Integer, default=0, nullable=False)
	time_spent = Column(Integer, default=0, nullable=False)
