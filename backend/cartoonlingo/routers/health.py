from fastapi import APIRouter

from ..settings import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
	return {"status": "ok", "speech_recognition": settings.google_speech_enabled}
