from __future__ import annotations
from datetime import datetime, timedelta
from typing import Dict
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession
from .practice import ReadingPractice


def purge_older_than_one_week(db: Session) -> int:
	threshold = datetime.utcnow() - timedelta(days=7)
	# Logged-in sessions nobody has used for a week
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	return res.rowcount or 0


async def purge_idle_reading_sessions(sessions: Dict[str, ReadingPractice], idle_hours: int) -> int:
	threshold = datetime.utcnow() - timedelta(hours=idle_hours)
	stale = [sid for sid, state in sessions.items() if state.updated_at < threshold]
	for sid in stale:
		state = sessions.pop(sid, None)
		if state is not None:
			# Stops any read-aloud still attached to the session
			await state.close()
	return len(stale)
