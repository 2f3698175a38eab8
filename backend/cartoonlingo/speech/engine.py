"""Text-to-speech engine interface.

Mirrors what a platform speech-synthesis service exposes: a queue of
utterances, speaking/paused/pending flags, pause/resume/cancel, a voice list
that may be populated late, and per-utterance lifecycle events.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Callable, List, Optional

# Error kinds an engine reports through Utterance.on_error
ERROR_INTERRUPTED = "interrupted"
ERROR_CANCELED = "canceled"


@dataclass(frozen=True)
class Voice:
	name: str
	lang: str
	default: bool = False


@dataclass
class Utterance:
	"""One unit of queued speech.

	Handlers are called by the engine on the event loop:
	on_start(), on_end(), on_error(kind), on_boundary(char_index, name).
	"""
	text: str
	lang: str = "en-US"
	voice: Optional[Voice] = None
	rate: float = 1.0
	pitch: float = 1.0
	volume: float = 1.0
	on_start: Optional[Callable[[], None]] = field(default=None, repr=False)
	on_end: Optional[Callable[[], None]] = field(default=None, repr=False)
	on_error: Optional[Callable[[str], None]] = field(default=None, repr=False)
	on_boundary: Optional[Callable[[int, str], None]] = field(default=None, repr=False)


class SpeechEngine(abc.ABC):
	"""Platform speech synthesis."""

	#: False for engines that never emit word-boundary events
	supports_boundary_events: bool = True

	def __init__(self) -> None:
		self._voices_listeners: List[Callable[[], None]] = []

	@property
	@abc.abstractmethod
	def speaking(self) -> bool:
		"""True while an utterance is being spoken (including while paused)."""

	@property
	@abc.abstractmethod
	def paused(self) -> bool:
		...

	@property
	def pending(self) -> bool:
		"""True when utterances are queued behind the current one."""
		return False

	@abc.abstractmethod
	def get_voices(self) -> List[Voice]:
		...

	@abc.abstractmethod
	def speak(self, utterance: Utterance) -> None:
		...

	@abc.abstractmethod
	def pause(self) -> None:
		...

	@abc.abstractmethod
	def resume(self) -> None:
		...

	@abc.abstractmethod
	def cancel(self) -> None:
		...

	def add_voices_listener(self, callback: Callable[[], None]) -> None:
		self._voices_listeners.append(callback)

	def remove_voices_listener(self, callback: Callable[[], None]) -> None:
		try:
			self._voices_listeners.remove(callback)
		except ValueError:
			pass

	def _notify_voices_changed(self) -> None:
		for callback in list(self._voices_listeners):
			callback()
