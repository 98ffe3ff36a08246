"""
Voice pipeline configuration.

All values come from the environment (loaded from .env when present) and
are read once at import time.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# Providers
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
VOICE_TRANSCRIBE_MODEL = os.getenv("VOICE_TRANSCRIBE_MODEL", "whisper-1")
VOICE_TRANSCRIBE_LANGUAGE = os.getenv("VOICE_TRANSCRIBE_LANGUAGE", "en")
VOICE_LLM_MODEL = os.getenv("VOICE_LLM_MODEL", "gpt-4o-mini")
VOICE_TRANSCRIBE_TIMEOUT_SECONDS = float(os.getenv("VOICE_TRANSCRIBE_TIMEOUT_SECONDS", "8"))
VOICE_PARSE_TIMEOUT_SECONDS = float(os.getenv("VOICE_PARSE_TIMEOUT_SECONDS", "8"))

# Limits
MAX_AUDIO_BYTES = 10 * 1024 * 1024
MAX_TRANSCRIPT_LENGTH = 1000

# Defaults
DEFAULT_WORKOUT_DURATION_MINUTES = 60
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/London")

# Below this, needs_clarification is forced
MIN_CONFIDENCE_THRESHOLD = 0.6

# Breakout capture
CAPTURE_SESSION_TTL_MINUTES = 10
PUBLIC_APP_URL = os.getenv("PUBLIC_APP_URL")

# Expiry sweep
SESSION_SWEEP_INTERVAL_MINUTES = int(os.getenv("SESSION_SWEEP_INTERVAL_MINUTES", "5"))
SESSION_RETENTION_HOURS = int(os.getenv("SESSION_RETENTION_HOURS", "24"))

# Auth collaborator
AUTH_API_URL = os.getenv("AUTH_API_URL")
AUTH_API_KEY = os.getenv("AUTH_API_KEY")
AUTH_TIMEOUT_SECONDS = 5.0
