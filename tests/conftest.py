import asyncio
import os
import tempfile
import uuid

import pytest

# Settings are read at import time, so point the app at a throwaway database first
_DB_DIR = tempfile.mkdtemp(prefix="cartoonlingo-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["GOOGLE_SPEECH_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"

from fastapi.testclient import TestClient  # noqa: E402

from cartoonlingo.main import app  # noqa: E402
from cartoonlingo.routers import reading  # noqa: E402
from cartoonlingo.speech.engine import ERROR_INTERRUPTED, SpeechEngine, Utterance, Voice  # noqa: E402
from cartoonlingo.speech.timed import TimedSpeechEngine  # noqa: E402


class FakeEngine(SpeechEngine):
	"""Speech engine driven by hand from tests."""

	def __init__(self, voices=None, boundary=True):
		super().__init__()
		self.voices = [Voice("Alex", "en-US")] if voices is None else list(voices)
		self.supports_boundary_events = boundary
		self.spoken = []
		self.current = None
		self.cancel_calls = 0
		self.keep_speaking_after_cancel = False
		self._paused = False

	@property
	def speaking(self):
		return self.current is not None

	@property
	def paused(self):
		return self._paused

	def get_voices(self):
		return list(self.voices)

	def set_voices(self, voices):
		self.voices = list(voices)
		self._notify_voices_changed()

	def speak(self, utterance):
		self.spoken.append(utterance)
		self.current = utterance

	def pause(self):
		self._paused = True

	def resume(self):
		self._paused = False

	def cancel(self):
		self.cancel_calls += 1
		if self.keep_speaking_after_cancel:
			return
		current = self.current
		self.current = None
		self._paused = False
		if current is not None and current.on_error:
			current.on_error(ERROR_INTERRUPTED)

	# ---- events -----------------------------------------------------

	def start(self):
		self.current.on_start()

	def boundary(self, char_index, name="word"):
		self.current.on_boundary(char_index, name)

	def end(self):
		current = self.current
		self.current = None
		current.on_end()

	def error(self, kind, drop=True):
		current = self.current
		if drop:
			self.current = None
		current.on_error(kind)

	def drop(self):
		"""Lose the current utterance without telling anyone."""
		self.current = None
		self._paused = False


@pytest.fixture
def make_engine():
	return FakeEngine


@pytest.fixture
def engine():
	return FakeEngine()


async def _wait_for(condition, timeout=1.0):
	loop = asyncio.get_running_loop()
	deadline = loop.time() + timeout
	while not condition():
		if loop.time() >= deadline:
			raise AssertionError("condition not met in time")
		await asyncio.sleep(0.001)


@pytest.fixture
def wait_for():
	return _wait_for


@pytest.fixture
def idle_utterance():
	return Utterance(text="already talking")


@pytest.fixture(scope="session")
def client():
	app.dependency_overrides[reading.get_speech_engine] = lambda: TimedSpeechEngine(word_ms=20)
	with TestClient(app) as c:
		yield c
	app.dependency_overrides.clear()


@pytest.fixture
def login(client):
	def _login(username=None, password="secret123"):
		username = username or f"user_{uuid.uuid4().hex[:10]}"
		r = client.post(
			"/auth/register",
			json={"username": username, "password": password, "email": f"{username}@example.com"},
		)
		assert r.status_code == 201, r.text
		r = client.post("/auth/token", data={"username": username, "password": password})
		assert r.status_code == 200, r.text
		return {"Authorization": f"Bearer {r.json()['access_token']}"}

	return _login
