from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import SpeechFailed, UnsupportedPlatform
from ..lessons import catalog
from ..practice import NotListening, ReadingPractice
from ..progress import record_completion
from ..settings import settings
from ..speech.driver import SpeechDriver
from ..speech.engine import SpeechEngine
from ..speech.recognition import SpeechRecognizer
from ..speech.timed import TimedSpeechEngine
from .auth import User, get_current_user


router = APIRouter(prefix="/reading", tags=["reading_practice"])

logger = logging.getLogger(__name__)

_sessions: Dict[str, ReadingPractice] = {}
_recognizer = SpeechRecognizer(enabled=settings.google_speech_enabled, language_code=settings.speech_locale)


def get_speech_engine() -> Optional[SpeechEngine]:
    return TimedSpeechEngine(word_ms=settings.speech_word_ms, boundary_events=settings.speech_boundary_events)


def get_recognizer() -> SpeechRecognizer:
    return _recognizer


class StartRequest(BaseModel):
    lesson_id: int
    touch_device: Optional[bool] = Field(default=None, description="Client is a phone/tablet; boundary events are unreliable there")


class ListenRequest(BaseModel):
    browser_recognition: bool = Field(default=True, description="Client can run speech recognition itself")


class TranscriptRequest(BaseModel):
    transcript: Optional[str] = None
    audio_base64: Optional[str] = None
    append: bool = False


class PlaybackRequest(BaseModel):
    from_index: int = Field(default=0, ge=0)


class VisibilityRequest(BaseModel):
    hidden: bool


def _session_or_404(session_id: str, user: User) -> ReadingPractice:
    state = _sessions.get(session_id)
    if not state or state.username != user.username:
        raise HTTPException(status_code=404, detail="Session not found")
    return state


def _complete(state: ReadingPractice, db: Session) -> Optional[Dict[str, Any]]:
    lesson = catalog.get(state.lesson_id)
    if lesson is None:
        return None
    elapsed = int((datetime.utcnow() - state.created_at).total_seconds())
    return record_completion(
        db,
        state.username,
        lesson,
        round(state.progress),
        elapsed,
        int(settings.reading_complete_percent),
    )


@router.post("/session/start")
async def start_session(
    req: StartRequest,
    user: User = Depends(get_current_user),
    engine: Optional[SpeechEngine] = Depends(get_speech_engine),
):
    lesson = catalog.get(req.lesson_id)
    if lesson is None:
        raise HTTPException(status_code=404, detail="Lesson not found")
    if not lesson.body:
        raise HTTPException(status_code=400, detail="Lesson has no reading text")
    driver = SpeechDriver.from_settings(engine, settings)
    if req.touch_device is not None:
        driver.touch_device = req.touch_device
    state = ReadingPractice(
        lesson.id,
        lesson.title,
        lesson.body,
        driver,
        username=user.username,
        locale=settings.speech_locale,
        keep_best=settings.scoring_keep_best,
        complete_percent=settings.reading_complete_percent,
    )
    _sessions[state.session_id] = state
    logger.info("reading session %s started for lesson %s", state.session_id, lesson.id)
    return {**state.snapshot(), "speech_supported": driver.supported}


@router.get("/session/{session_id}")
async def get_session(session_id: str, user: User = Depends(get_current_user)):
    return _session_or_404(session_id, user).snapshot()


@router.delete("/session/{session_id}")
async def end_session(session_id: str, user: User = Depends(get_current_user)):
    state = _session_or_404(session_id, user)
    await state.close()
    _sessions.pop(session_id, None)
    return {"ok": True}


@router.post("/session/{session_id}/listen/start")
async def start_listening(
    session_id: str,
    req: ListenRequest,
    user: User = Depends(get_current_user),
    recognizer: SpeechRecognizer = Depends(get_recognizer),
):
    state = _session_or_404(session_id, user)
    try:
        state.start_listening(supported=req.browser_recognition or recognizer.is_supported)
    except UnsupportedPlatform as e:
        raise HTTPException(status_code=503, detail=str(e))
    return state.snapshot()


@router.post("/session/{session_id}/listen/stop")
async def stop_listening(session_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    state = _session_or_404(session_id, user)
    completion = _complete(state, db) if state.stop_listening() else None
    return {**state.snapshot(), "completion": completion}


@router.post("/session/{session_id}/transcript")
async def post_transcript(
    session_id: str,
    req: TranscriptRequest,
    user: User = Depends(get_current_user),
    recognizer: SpeechRecognizer = Depends(get_recognizer),
):
    state = _session_or_404(session_id, user)
    if req.transcript is None and not req.audio_base64:
        raise HTTPException(status_code=400, detail="transcript or audio_base64 is required")
    text = req.transcript or ""
    append = req.append
    if req.audio_base64:
        try:
            text = await run_in_threadpool(recognizer.transcribe, req.audio_base64)
        except UnsupportedPlatform as e:
            raise HTTPException(status_code=503, detail=str(e))
        except SpeechFailed as e:
            raise HTTPException(status_code=502, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        # recognized audio is always a new chunk of the session
        append = True
    try:
        state.update_transcript(text, append=append)
    except NotListening as e:
        raise HTTPException(status_code=409, detail=str(e))
    return state.snapshot()


@router.post("/session/{session_id}/reset")
async def reset_session(session_id: str, user: User = Depends(get_current_user)):
    state = _session_or_404(session_id, user)
    state.reset()
    return state.snapshot()


@router.post("/session/{session_id}/playback/start")
async def start_playback(session_id: str, req: PlaybackRequest, user: User = Depends(get_current_user)):
    state = _session_or_404(session_id, user)
    try:
        state.start_reading(req.from_index)
    except UnsupportedPlatform as e:
        raise HTTPException(status_code=503, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return state.snapshot()


@router.post("/session/{session_id}/playback/pause")
async def pause_playback(session_id: str, user: User = Depends(get_current_user)):
    state = _session_or_404(session_id, user)
    state.pause_reading()
    return state.snapshot()


@router.post("/session/{session_id}/playback/resume")
async def resume_playback(session_id: str, user: User = Depends(get_current_user)):
    state = _session_or_404(session_id, user)
    restarted = state.resume_reading()
    return {**state.snapshot(), "restarted": restarted}


@router.post("/session/{session_id}/playback/stop")
async def stop_playback(session_id: str, user: User = Depends(get_current_user)):
    state = _session_or_404(session_id, user)
    state.stop_reading()
    return state.snapshot()


@router.post("/session/{session_id}/visibility")
async def visibility(session_id: str, req: VisibilityRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    state = _session_or_404(session_id, user)
    completion = _complete(state, db) if state.visibility_changed(req.hidden) else None
    return {**state.snapshot(), "completion": completion}
