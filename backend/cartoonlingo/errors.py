"""Errors raised by the speech driver and the reading-practice controller."""
from __future__ import annotations

from typing import Optional


class SpeechError(Exception):
    """Base class for read-aloud / recognition failures."""


class UnsupportedPlatform(SpeechError):
    """No speech synthesis or recognition is available."""


class TransientInterruption(SpeechError):
    """The engine reported an interruption we caused ourselves (pause/cancel)."""


class UnexpectedCancellation(SpeechError):
    """The engine dropped an utterance nobody asked it to drop, even after a retry."""


class ResumeFailed(SpeechError):
    """A paused utterance was lost by the engine and cannot be resumed.

    ``word_index`` is the last global word index reported before the pause, or
    -1 when no word had been reached. Callers restart reading from there.
    """

    def __init__(self, word_index: int, message: Optional[str] = None) -> None:
        super().__init__(message or f"could not resume playback at word {word_index}")
        self.word_index = word_index


class SpeechFailed(SpeechError):
    """Any other engine error; terminal for the current utterance."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"speech engine error: {kind}")
        self.kind = kind
