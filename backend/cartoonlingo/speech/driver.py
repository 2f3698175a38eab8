"""Speech output driver for read-along.

Wraps a ``SpeechEngine`` in an owned playback session: one utterance at a
time, word-level progress callbacks (native boundary events, or an estimated
timer when the engine does not deliver them), pause/resume/stop, and the
engine quirks that come with platform speech synthesis:

- a new utterance queued right after ``cancel()`` can overlap or be dropped,
  so the driver waits for the engine to report silence first;
- the voice list may be empty until the engine fires voices-changed;
- a paused utterance can silently disappear;
- utterances are sometimes cancelled by the engine itself.

Every engine callback is tied to the session token and utterance it was
created for and is ignored once that session is gone.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..errors import (
	ResumeFailed,
	SpeechError,
	SpeechFailed,
	TransientInterruption,
	UnexpectedCancellation,
	UnsupportedPlatform,
)
from .engine import ERROR_CANCELED, ERROR_INTERRUPTED, SpeechEngine, Utterance, Voice

logger = logging.getLogger(__name__)

IDLE = "idle"
PLAYING = "playing"
PAUSED = "paused"
STOPPED = "stopped"

# word_index before the first word of the queued text has been reached
NOT_STARTED = -1

MALE_VOICE_HINTS = (
	"male", "david", "daniel", "alex", "fred", "james", "mark", "george",
	"thomas", "oliver", "arthur", "diego", "jorge", "ricardo", "felipe",
)

WordBoundaryCallback = Callable[[str, int], None]


def _looks_male(name: str) -> bool:
	tokens = re.findall(r"[a-z]+", name.lower())
	if "female" in tokens:
		return False
	return any(t in MALE_VOICE_HINTS for t in tokens)


def _voices_for(voices: Sequence[Voice], locale: str) -> List[Voice]:
	tag = locale.lower().replace("_", "-")
	exact = [v for v in voices if v.lang.lower().replace("_", "-") == tag]
	if exact:
		return exact
	language = tag.split("-")[0]
	return [v for v in voices if v.lang.lower().replace("_", "-").split("-")[0] == language]


def select_voice(voices: Sequence[Voice], locale: str, fallback_locale: Optional[str] = None) -> Optional[Voice]:
	"""Pick a voice for ``locale``.

	Preference order: a male-sounding voice for the locale, any voice for the
	locale, then the same two steps for ``fallback_locale``. Returns None when
	nothing matches, leaving the engine default in place.
	"""
	for candidate in (locale, fallback_locale):
		if not candidate:
			continue
		matching = _voices_for(voices, candidate)
		if not matching:
			continue
		for voice in matching:
			if _looks_male(voice.name):
				return voice
		return matching[0]
	return None


def word_index_at(words: Sequence[str], char_index: int) -> int:
	"""Map a character offset in ``" ".join(words)`` to a word index.

	Word lengths (plus one separator each) are accumulated until the running
	total passes the offset. Offsets beyond the text clamp to the last word.
	"""
	end = 0
	for index, word in enumerate(words):
		end += len(word) + 1
		if end > char_index:
			return index
	return max(len(words) - 1, 0)


def estimate_word_seconds(rate: float, word_ms: int = 400) -> float:
	return word_ms / 1000.0 / max(rate, 0.1)


@dataclass
class PlaybackSession:
	token: int
	text: str
	words: List[str]
	locale: str
	start_word_offset: int
	on_word_boundary: Optional[WordBoundaryCallback]
	done: asyncio.Future
	status: str = PLAYING
	local_index: int = NOT_STARTED
	utterance: Optional[Utterance] = None
	started: bool = False
	boundary_seen: bool = False
	timed: bool = False
	retries: int = 0
	fallback_task: Optional[asyncio.Task] = field(default=None, repr=False)
	watchdog: Optional[asyncio.TimerHandle] = field(default=None, repr=False)
	retry_handle: Optional[asyncio.TimerHandle] = field(default=None, repr=False)
	voices_listener: Optional[Callable[[], None]] = field(default=None, repr=False)

	@property
	def word_index(self) -> int:
		if self.local_index == NOT_STARTED:
			return NOT_STARTED
		return self.start_word_offset + self.local_index


class SpeechDriver:
	def __init__(
		self,
		engine: Optional[SpeechEngine],
		*,
		locale: str = "en-US",
		fallback_locale: Optional[str] = "en-GB",
		rate: float = 0.9,
		pitch: float = 1.0,
		volume: float = 1.0,
		word_ms: int = 400,
		touch_device: bool = False,
		stop_wait_seconds: float = 2.0,
		stop_poll_seconds: float = 0.05,
		retry_delay_seconds: float = 0.3,
	) -> None:
		self.engine = engine
		self.locale = locale
		self.fallback_locale = fallback_locale
		self.rate = rate
		self.pitch = pitch
		self.volume = volume
		self.word_ms = word_ms
		self.touch_device = touch_device
		self.stop_wait_seconds = stop_wait_seconds
		self.stop_poll_seconds = stop_poll_seconds
		self.retry_delay_seconds = retry_delay_seconds
		self._token = 0
		self._session: Optional[PlaybackSession] = None

	@classmethod
	def from_settings(cls, engine: Optional[SpeechEngine], settings) -> "SpeechDriver":
		return cls(
			engine,
			locale=settings.speech_locale,
			fallback_locale=settings.speech_fallback_locale,
			rate=settings.speech_rate,
			pitch=settings.speech_pitch,
			volume=settings.speech_volume,
			word_ms=settings.speech_word_ms,
			touch_device=settings.speech_touch_device,
			stop_wait_seconds=settings.speech_stop_wait_seconds,
			stop_poll_seconds=settings.speech_stop_poll_seconds,
			retry_delay_seconds=settings.speech_retry_delay_seconds,
		)

	@property
	def supported(self) -> bool:
		return self.engine is not None

	@property
	def session(self) -> Optional[PlaybackSession]:
		return self._session

	@property
	def status(self) -> str:
		return self._session.status if self._session else IDLE

	@property
	def word_index(self) -> int:
		return self._session.word_index if self._session else NOT_STARTED

	@property
	def word_seconds(self) -> float:
		return estimate_word_seconds(self.rate, self.word_ms)

	# ------------------------------------------------------------------
	# Public operations
	# ------------------------------------------------------------------

	async def speak(
		self,
		text: str,
		locale: Optional[str] = None,
		start_word_offset: int = 0,
		on_word_boundary: Optional[WordBoundaryCallback] = None,
	) -> bool:
		"""Speak ``text`` and wait until it is over.

		Args:
			text: Text to read; whitespace is normalized before speaking
			locale: BCP-47 tag for voice selection (driver default when None)
			start_word_offset: Global index of the first word of ``text``
			on_word_boundary: Called with ``(word, global_index)`` per word

		Returns:
			True when the utterance ended normally, False when it was stopped
			or replaced by another ``speak`` call.

		Raises:
			UnsupportedPlatform: No engine is available
			UnexpectedCancellation: The engine dropped the utterance twice
			SpeechFailed: Any other engine error
		"""
		if self.engine is None:
			raise UnsupportedPlatform("speech synthesis is not available")
		words = text.split()
		previous = self._session
		if previous is not None:
			self._clear(previous)
		if not words:
			if self.engine.speaking or self.engine.pending:
				self.engine.cancel()
			return True

		loop = asyncio.get_running_loop()
		self._token += 1
		session = PlaybackSession(
			token=self._token,
			text=" ".join(words),
			words=words,
			locale=locale or self.locale,
			start_word_offset=start_word_offset,
			on_word_boundary=on_word_boundary,
			done=loop.create_future(),
		)
		self._session = session

		await self._wait_for_silence(session)
		if self._is_current(session) and not self.engine.get_voices():
			await self._wait_for_voices(session)
		if self._is_current(session):
			self._start_utterance(session)
		return await session.done

	def pause(self) -> None:
		session = self._session
		if session is None or session.status != PLAYING:
			return
		if not self.engine.speaking or self.engine.paused:
			return
		self.engine.pause()
		session.status = PAUSED
		self._cancel_timers(session)
		logger.debug("playback paused at word %d", session.word_index)

	def resume(self) -> None:
		session = self._session
		if session is None or session.status != PAUSED:
			return
		if not self.engine.speaking:
			# engine lost the paused utterance
			index = session.word_index
			self._clear(session)
			logger.warning("paused utterance was dropped by the engine (word %d)", index)
			raise ResumeFailed(index)
		self.engine.resume()
		session.status = PLAYING
		if session.timed:
			self._start_fallback(session)
		elif session.started and not session.boundary_seen:
			# paused before the watchdog could fire
			self._arm_watchdog(session)
		logger.debug("playback resumed at word %d", session.word_index)

	def stop(self) -> None:
		session = self._session
		if session is None:
			return
		self._clear(session)
		if self.engine is not None:
			self.engine.cancel()
		logger.debug("playback stopped")

	# ------------------------------------------------------------------
	# Session plumbing
	# ------------------------------------------------------------------

	def _is_current(self, session: PlaybackSession) -> bool:
		return self._session is session and not session.done.done()

	def _owner(self, token: int, utterance: Utterance) -> Optional[PlaybackSession]:
		session = self._session
		if session is None or session.token != token or session.utterance is not utterance:
			return None
		return session

	async def _wait_for_silence(self, session: PlaybackSession) -> None:
		if not (self.engine.speaking or self.engine.pending):
			return
		self.engine.cancel()
		loop = asyncio.get_running_loop()
		deadline = loop.time() + self.stop_wait_seconds
		while self.engine.speaking:
			if loop.time() >= deadline:
				logger.warning("engine still speaking %.1fs after cancel; speaking anyway", self.stop_wait_seconds)
				return
			await asyncio.sleep(self.stop_poll_seconds)
			if not self._is_current(session):
				return

	async def _wait_for_voices(self, session: PlaybackSession) -> None:
		loop = asyncio.get_running_loop()
		ready = loop.create_future()

		def _listener() -> None:
			self.engine.remove_voices_listener(_listener)
			session.voices_listener = None
			if not ready.done():
				ready.set_result(None)

		session.voices_listener = _listener
		self.engine.add_voices_listener(_listener)
		logger.debug("voice list empty; waiting for voices-changed")
		await asyncio.wait({ready, session.done}, return_when=asyncio.FIRST_COMPLETED)
		if not ready.done():
			ready.cancel()

	def _start_utterance(self, session: PlaybackSession) -> None:
		voice = select_voice(self.engine.get_voices(), session.locale, self.fallback_locale)
		utterance = Utterance(
			text=session.text,
			lang=voice.lang if voice else session.locale,
			voice=voice,
			rate=self.rate,
			pitch=self.pitch,
			volume=self.volume,
		)
		token = session.token
		utterance.on_start = lambda: self._handle_start(token, utterance)
		utterance.on_end = lambda: self._handle_end(token, utterance)
		utterance.on_error = lambda kind: self._handle_error(token, utterance, kind)
		utterance.on_boundary = lambda char_index, name: self._handle_boundary(token, utterance, char_index, name)
		session.utterance = utterance
		session.status = PLAYING
		session.local_index = NOT_STARTED
		session.started = False
		session.boundary_seen = False
		session.timed = False
		logger.debug(
			"speaking %d words from offset %d with voice %s",
			len(session.words), session.start_word_offset, voice.name if voice else "<default>",
		)
		self.engine.speak(utterance)

	def _emit(self, session: PlaybackSession, local_index: int) -> None:
		session.local_index = local_index
		if session.on_word_boundary is not None:
			session.on_word_boundary(session.words[local_index], session.word_index)

	def _cancel_timers(self, session: PlaybackSession) -> None:
		if session.fallback_task is not None:
			session.fallback_task.cancel()
			session.fallback_task = None
		if session.watchdog is not None:
			session.watchdog.cancel()
			session.watchdog = None

	def _clear(
		self,
		session: PlaybackSession,
		completed: bool = False,
		error: Optional[SpeechError] = None,
	) -> None:
		self._cancel_timers(session)
		if session.retry_handle is not None:
			session.retry_handle.cancel()
			session.retry_handle = None
		if session.voices_listener is not None and self.engine is not None:
			self.engine.remove_voices_listener(session.voices_listener)
			session.voices_listener = None
		session.status = IDLE if completed else STOPPED
		if self._session is session:
			self._session = None
		if session.done.done():
			return
		if error is not None:
			session.done.set_exception(error)
		else:
			session.done.set_result(completed)

	def _fail(self, session: PlaybackSession, error: SpeechError) -> None:
		logger.error("read-aloud failed: %s", error)
		self._clear(session, error=error)

	# ------------------------------------------------------------------
	# Fallback word timer
	# ------------------------------------------------------------------

	def _start_fallback(self, session: PlaybackSession) -> None:
		if session.fallback_task is not None:
			return
		session.timed = True
		session.fallback_task = asyncio.get_running_loop().create_task(self._advance_words(session))

	async def _advance_words(self, session: PlaybackSession) -> None:
		interval = self.word_seconds
		index = session.local_index + 1
		try:
			if index > 0:
				await asyncio.sleep(interval)
			while index < len(session.words):
				if not self._is_current(session) or session.status != PLAYING:
					return
				self._emit(session, index)
				index += 1
				if index < len(session.words):
					await asyncio.sleep(interval)
		finally:
			if session.fallback_task is asyncio.current_task():
				session.fallback_task = None

	def _arm_watchdog(self, session: PlaybackSession) -> None:
		if session.watchdog is not None:
			session.watchdog.cancel()
		session.watchdog = asyncio.get_running_loop().call_later(
			self.word_seconds / 2, self._watchdog_fired, session.token, session.utterance,
		)

	def _watchdog_fired(self, token: int, utterance: Utterance) -> None:
		session = self._owner(token, utterance)
		if session is None:
			return
		session.watchdog = None
		if session.boundary_seen or session.status != PLAYING:
			return
		logger.info("no word-boundary events from engine; using estimated word timing")
		self._start_fallback(session)

	# ------------------------------------------------------------------
	# Engine callbacks
	# ------------------------------------------------------------------

	def _handle_start(self, token: int, utterance: Utterance) -> None:
		session = self._owner(token, utterance)
		if session is None:
			return
		session.started = True
		if self.touch_device or not self.engine.supports_boundary_events:
			self._start_fallback(session)
			return
		self._arm_watchdog(session)

	def _handle_boundary(self, token: int, utterance: Utterance, char_index: int, name: str) -> None:
		session = self._owner(token, utterance)
		if session is None or name not in ("word", ""):
			return
		session.boundary_seen = True
		session.timed = False
		self._cancel_timers(session)
		self._emit(session, word_index_at(session.words, char_index))

	def _handle_end(self, token: int, utterance: Utterance) -> None:
		session = self._owner(token, utterance)
		if session is None:
			return
		logger.debug("utterance ended at word %d", session.word_index)
		self._clear(session, completed=True)

	def _handle_error(self, token: int, utterance: Utterance, kind: str) -> None:
		session = self._owner(token, utterance)
		if session is None:
			logger.debug("ignoring %s from a finished utterance", kind)
			return
		error = self._classify(session, kind)
		if isinstance(error, TransientInterruption):
			logger.debug("ignoring expected interruption: %s", error)
			return
		if isinstance(error, UnexpectedCancellation) and session.retries < 1:
			session.retries += 1
			self._cancel_timers(session)
			session.utterance = None
			logger.warning("engine cancelled the utterance; retrying in %.2fs", self.retry_delay_seconds)
			session.retry_handle = asyncio.get_running_loop().call_later(
				self.retry_delay_seconds, self._retry, session,
			)
			return
		self._fail(session, error)

	def _classify(self, session: PlaybackSession, kind: str) -> SpeechError:
		if kind == ERROR_INTERRUPTED and session.status == PAUSED:
			return TransientInterruption(kind)
		if kind == ERROR_CANCELED:
			return UnexpectedCancellation("engine cancelled the utterance")
		return SpeechFailed(kind)

	def _retry(self, session: PlaybackSession) -> None:
		session.retry_handle = None
		if not self._is_current(session):
			return
		self._start_utterance(session)
