from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from google.cloud import speech_v1p1beta1 as speech
from google.api_core.exceptions import GoogleAPIError

from ..errors import SpeechFailed, UnsupportedPlatform
from ..scoring import dedupe_transcript

logger = logging.getLogger(__name__)


class SpeechRecognizer:
	"""Speech-to-text for audio posted by clients without in-browser recognition.

	Uses Google Cloud Speech-to-Text; credentials come from the usual
	GOOGLE_APPLICATION_CREDENTIALS environment.
	"""

	def __init__(self, enabled: bool, language_code: str = "en-US") -> None:
		self.enabled = enabled
		self.language_code = language_code
		self._client: Optional[speech.SpeechClient] = None

	@property
	def is_supported(self) -> bool:
		return self.enabled

	def _get_client(self) -> speech.SpeechClient:
		if self._client is None:
			try:
				self._client = speech.SpeechClient()
			except Exception as e:
				raise UnsupportedPlatform(f"speech recognition unavailable: {e}") from e
		return self._client

	def transcribe(self, audio_base64: str, language_code: Optional[str] = None) -> str:
		"""Return the cleaned transcript of a base64 audio chunk ("" when nothing was heard)."""
		if not self.enabled:
			raise UnsupportedPlatform("speech recognition is not enabled")
		try:
			audio_content = base64.b64decode(audio_base64, validate=True)
		except (binascii.Error, ValueError) as e:
			raise ValueError("audio_base64 is not valid base64") from e
		if not audio_content:
			raise ValueError("empty audio payload")

		client = self._get_client()
		audio = speech.RecognitionAudio(content=audio_content)
		config = speech.RecognitionConfig(
			language_code=language_code or self.language_code,
			model="default",
			profanity_filter=False,
			enable_automatic_punctuation=False,
		)
		try:
			response = client.recognize(config=config, audio=audio)
		except GoogleAPIError as e:
			logger.error("speech recognition failed: %s", e)
			raise SpeechFailed(f"recognition: {e}") from e

		parts = [r.alternatives[0].transcript for r in response.results if r.alternatives]
		return dedupe_transcript(" ".join(parts))
