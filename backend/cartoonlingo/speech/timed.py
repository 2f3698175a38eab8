"""Headless speech engine that paces utterances on the event-loop clock.

It produces no audio. Each word takes ``word_ms / rate`` milliseconds and the
engine fires the same lifecycle events a platform engine would, so the server
can drive read-along highlighting for a client that plays audio itself.
"""
from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from typing import Deque, Iterable, List, Optional

from .engine import ERROR_CANCELED, ERROR_INTERRUPTED, SpeechEngine, Utterance, Voice

logger = logging.getLogger(__name__)

DEFAULT_VOICES: List[Voice] = [
	Voice(name="Samantha", lang="en-US", default=True),
	Voice(name="Alex (Male)", lang="en-US"),
	Voice(name="Google UK English Female", lang="en-GB"),
	Voice(name="Google UK English Male", lang="en-GB"),
	Voice(name="Luciana", lang="pt-BR"),
]


class TimedSpeechEngine(SpeechEngine):
	def __init__(
		self,
		voices: Optional[Iterable[Voice]] = None,
		*,
		word_ms: int = 400,
		boundary_events: bool = True,
	) -> None:
		super().__init__()
		self._voices: List[Voice] = list(DEFAULT_VOICES if voices is None else voices)
		self.word_ms = word_ms
		self.supports_boundary_events = boundary_events
		self._queue: Deque[Utterance] = deque()
		self._current: Optional[Utterance] = None
		self._task: Optional[asyncio.Task] = None
		self._paused = False
		self._resumed = asyncio.Event()
		self._resumed.set()

	@property
	def speaking(self) -> bool:
		return self._current is not None

	@property
	def paused(self) -> bool:
		return self._paused

	@property
	def pending(self) -> bool:
		return bool(self._queue)

	def get_voices(self) -> List[Voice]:
		return list(self._voices)

	def set_voices(self, voices: Iterable[Voice]) -> None:
		self._voices = list(voices)
		self._notify_voices_changed()

	def speak(self, utterance: Utterance) -> None:
		self._queue.append(utterance)
		if self._current is None:
			self._start_next()

	def pause(self) -> None:
		if self._current is not None and not self._paused:
			self._paused = True
			self._resumed.clear()

	def resume(self) -> None:
		if self._paused:
			self._paused = False
			self._resumed.set()

	def cancel(self) -> None:
		loop = asyncio.get_running_loop()
		dropped = list(self._queue)
		self._queue.clear()
		for utterance in dropped:
			if utterance.on_error:
				loop.call_soon(utterance.on_error, ERROR_CANCELED)
		current = self._current
		if current is None:
			return
		self._current = None
		if self._task is not None:
			self._task.cancel()
			self._task = None
		self._paused = False
		self._resumed.set()
		if current.on_error:
			loop.call_soon(current.on_error, ERROR_INTERRUPTED)

	def _start_next(self) -> None:
		if not self._queue:
			return
		utterance = self._queue.popleft()
		self._current = utterance
		self._task = asyncio.get_running_loop().create_task(self._run(utterance))

	async def _run(self, utterance: Utterance) -> None:
		per_word = self.word_ms / 1000.0 / max(utterance.rate, 0.1)
		if utterance.on_start:
			utterance.on_start()
		for match in re.finditer(r"\S+", utterance.text):
			await self._resumed.wait()
			if self.supports_boundary_events and utterance.on_boundary:
				utterance.on_boundary(match.start(), "word")
			await asyncio.sleep(per_word)
		await self._resumed.wait()
		if self._current is not utterance:
			return
		self._current = None
		self._task = None
		logger.debug("utterance finished (%d chars)", len(utterance.text))
		if utterance.on_end:
			utterance.on_end()
		self._start_next()
