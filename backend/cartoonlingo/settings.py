from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Auth configuration (DB-backed users plus an optional seed user via env)
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Speech output (read-aloud)
	speech_locale: str = Field(default="en-US", validation_alias="SPEECH_LOCALE")
	# Used for voice selection when nothing matches speech_locale
	speech_fallback_locale: str = Field(default="en-GB", validation_alias="SPEECH_FALLBACK_LOCALE")
	speech_rate: float = Field(default=0.9, gt=0, validation_alias="SPEECH_RATE")
	speech_pitch: float = Field(default=1.0, validation_alias="SPEECH_PITCH")
	speech_volume: float = Field(default=1.0, ge=0, le=1, validation_alias="SPEECH_VOLUME")
	# Estimated duration of one word at rate 1.0
	speech_word_ms: int = Field(default=400, gt=0, validation_alias="SPEECH_WORD_MS")
	speech_stop_wait_seconds: float = Field(default=2.0, validation_alias="SPEECH_STOP_WAIT_SECONDS")
	speech_stop_poll_seconds: float = Field(default=0.05, validation_alias="SPEECH_STOP_POLL_SECONDS")
	speech_retry_delay_seconds: float = Field(default=0.3, validation_alias="SPEECH_RETRY_DELAY_SECONDS")
	# Touch form factors never get reliable boundary events; go straight to the timer
	speech_touch_device: bool = Field(default=False, validation_alias="SPEECH_TOUCH_DEVICE")
	# Whether the headless engine emits native word-boundary events
	speech_boundary_events: bool = Field(default=True, validation_alias="SPEECH_BOUNDARY_EVENTS")

	# Speech recognition for posted audio (Google Cloud Speech-to-Text)
	google_speech_enabled: bool = Field(default=False, validation_alias="GOOGLE_SPEECH_ENABLED")

	# Scoring / lesson rules
	scoring_keep_best: bool = Field(default=True, validation_alias="SCORING_KEEP_BEST")
	reading_complete_percent: float = Field(default=80.0, validation_alias="READING_COMPLETE_PERCENT")
	quiz_pass_percent: int = Field(default=70, validation_alias="QUIZ_PASS_PERCENT")

	# In-memory reading sessions idle longer than this are purged
	session_idle_hours: int = Field(default=6, validation_alias="SESSION_IDLE_HOURS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
