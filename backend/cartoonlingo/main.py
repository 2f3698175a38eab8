import asyncio
import logging

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from .db import Base, engine, get_db, ensure_schema
from .cleanup import purge_older_than_one_week, purge_idle_reading_sessions
from .settings import settings
from .routers import health
from .routers import auth
from .routers import lessons
from .routers import reading

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="CartoonLingo API")
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(lessons.router)
app.include_router(reading.router)

_cleanup_task = None


@app.get("/", include_in_schema=False)
async def redirect_root_to_docs():
	return RedirectResponse(url="/docs")


def _purge_auth_sessions() -> None:
	db = next(get_db())
	try:
		removed = purge_older_than_one_week(db)
		if removed:
			logger.info("purged %d idle auth sessions", removed)
	except Exception:
		logger.exception("auth session cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	# Reading sessions are checked hourly, auth sessions daily
	ticks = 0
	while True:
		await asyncio.sleep(60 * 60)
		ticks += 1
		removed = await purge_idle_reading_sessions(reading._sessions, settings.session_idle_hours)
		if removed:
			logger.info("closed %d idle reading sessions", removed)
		if ticks % 24 == 0:
			_purge_auth_sessions()


@app.on_event("startup")
async def startup_event():
	global _cleanup_task
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight dev migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("schema migration failed")
	_purge_auth_sessions()
	_cleanup_task = asyncio.create_task(_cleanup_watcher())


@app.on_event("shutdown")
async def shutdown_event():
	if _cleanup_task is not None:
		_cleanup_task.cancel()
	for state in list(reading._sessions.values()):
		await state.close()
	reading._sessions.clear()
