"""Reading-practice controller: one learner working through one reading lesson.

Keeps the reference words, per-word feedback and transcript of the lesson and
drives read-aloud through a ``SpeechDriver``, title first and then body, so the
current word index is always global across both segments.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .errors import ResumeFailed, SpeechError, UnsupportedPlatform
from .scoring import (
    ReferenceText,
    WordFeedback,
    initial_feedback,
    progress,
    score,
    summarize,
)
from .speech.driver import IDLE, NOT_STARTED, PAUSED, PLAYING, STOPPED, SpeechDriver

logger = logging.getLogger(__name__)


class NotListening(Exception):
    pass


class ReadingPractice:
    """One learner reading one lesson.

    Owns the reference text, word feedback, transcript and the two state
    machines of the reading screen: listening (idle/listening) and read-aloud
    (idle/playing/paused/stopped). Nothing outside this object mutates them.
    """

    def __init__(
        self,
        lesson_id: int,
        title: str,
        body: str,
        driver: SpeechDriver,
        *,
        username: Optional[str] = None,
        locale: str = "en-US",
        keep_best: bool = True,
        complete_percent: float = 80.0,
    ) -> None:
        self.session_id = uuid.uuid4().hex
        self.lesson_id = lesson_id
        self.username = username
        self.title = title
        self.body = body
        self.driver = driver
        self.locale = locale
        self.keep_best = keep_best
        self.complete_percent = complete_percent
        self.reference = ReferenceText.from_lesson(title, body)
        self.feedback: List[WordFeedback] = initial_feedback(self.reference.words)
        self.transcript = ""
        self.listening = False
        self.playback = IDLE
        self.current_word = NOT_STARTED
        self.completed = False
        self.last_error: Optional[str] = None
        self.created_at = datetime.utcnow()
        self.updated_at = self.created_at
        self._read_task: Optional[asyncio.Task] = None

    def _touch(self) -> None:
        self.updated_at = datetime.utcnow()

    @property
    def progress(self) -> float:
        return progress(self.transcript, len(self.reference))

    # ---- listening -------------------------------------------------------

    def start_listening(self, supported: bool = True) -> None:
        if not supported:
            raise UnsupportedPlatform("speech recognition is not available")
        self.transcript = ""
        self.listening = True
        self._touch()

    def update_transcript(self, transcript: str, *, append: bool = False) -> float:
        """Take the latest transcript and rescore; returns the progress percentage.

        ``transcript`` is the cumulative text of the listening session unless
        ``append`` is set, in which case it is a new chunk added to it.
        """
        if not self.listening:
            raise NotListening("start listening before sending transcripts")
        text = (transcript or "").strip()
        if append:
            self.transcript = f"{self.transcript} {text}".strip()
        else:
            self.transcript = text
        self.feedback = score(self.transcript, self.reference.words, self.feedback, keep_best=self.keep_best)
        self._touch()
        return self.progress

    def stop_listening(self) -> bool:
        """Leave listening mode. Returns True when this stop completed the lesson."""
        if not self.listening:
            return False
        self.listening = False
        self._touch()
        if not self.completed and self.progress >= self.complete_percent:
            self.completed = True
            logger.info("reading lesson %s completed at %.0f%%", self.lesson_id, self.progress)
            return True
        return False

    def reset(self) -> None:
        self.transcript = ""
        self.feedback = initial_feedback(self.reference.words)
        self._touch()

    # ---- read aloud ------------------------------------------------------

    def _segments(self, from_index: int) -> List[Tuple[str, int]]:
        words = self.reference.words
        split = self.reference.title_word_count
        segments: List[Tuple[str, int]] = []
        if from_index < split:
            segments.append((" ".join(words[from_index:split]), from_index))
        body_start = max(from_index, split)
        if body_start < len(words):
            segments.append((" ".join(words[body_start:]), body_start))
        return segments

    def _on_word(self, word: str, index: int) -> None:
        self.current_word = index

    def start_reading(self, from_index: int = 0) -> None:
        if not self.driver.supported:
            raise UnsupportedPlatform("speech synthesis is not available")
        if from_index < 0 or from_index >= max(len(self.reference), 1):
            raise ValueError("from_index out of range")
        self.driver.stop()
        self.playback = PLAYING
        self.current_word = from_index - 1 if from_index > 0 else NOT_STARTED
        self.last_error = None
        self._read_task = asyncio.get_running_loop().create_task(self._read_aloud(from_index))
        self._touch()

    async def _read_aloud(self, from_index: int) -> None:
        me = asyncio.current_task()
        try:
            for text, offset in self._segments(from_index):
                if self._read_task is not me:
                    return
                finished = await self.driver.speak(text, self.locale, offset, self._on_word)
                if not finished:
                    return
        except SpeechError as e:
            if self._read_task is me:
                self.last_error = str(e)
                self.playback = IDLE
            return
        if self._read_task is me:
            self.playback = IDLE
            self._touch()

    def pause_reading(self) -> None:
        if self.playback != PLAYING:
            return
        self.driver.pause()
        if self.driver.status == PAUSED:
            self.playback = PAUSED
            self._touch()

    def resume_reading(self) -> bool:
        """Resume paused read-aloud. Returns True when playback had to be restarted."""
        if self.playback != PAUSED:
            return False
        try:
            self.driver.resume()
        except ResumeFailed as e:
            restart_at = max(e.word_index, 0)
            logger.info("resume failed; restarting read-aloud at word %d", restart_at)
            self.start_reading(restart_at)
            return True
        self.playback = PLAYING
        self._touch()
        return False

    def stop_reading(self) -> None:
        # ends _read_aloud between title and body, when the driver has nothing to cancel
        self._read_task = None
        self.driver.stop()
        if self.playback in (PLAYING, PAUSED):
            self.playback = STOPPED
            self._touch()

    def visibility_changed(self, hidden: bool) -> bool:
        if not hidden:
            return False
        self.pause_reading()
        return self.stop_listening()

    async def close(self) -> None:
        self.driver.stop()
        task = self._read_task
        self._read_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "lesson_id": self.lesson_id,
            "title": self.title,
            "words": [{"word": f.word, "status": f.status} for f in self.feedback],
            "title_word_count": self.reference.title_word_count,
            "summary": summarize(self.feedback),
            "transcript": self.transcript,
            "progress": round(self.progress, 1),
            "listening": self.listening,
            "playback": self.playback,
            "current_word": self.current_word,
            "completed": self.completed,
            "last_error": self.last_error,
        }
