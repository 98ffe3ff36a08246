from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError
import logging
from typing import Optional

from voicesched.services.errors import (
    EmptyAudio,
    FileTooLarge,
    NoSpeechDetected,
    ProviderError,
    ProviderTimeout,
)
from voicesched.utils.config import (
    MAX_AUDIO_BYTES,
    OPENAI_API_KEY,
    VOICE_TRANSCRIBE_LANGUAGE,
    VOICE_TRANSCRIBE_MODEL,
    VOICE_TRANSCRIBE_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

# Checked in order against the lowercased content type. Safari records
# audio-only clips as video/mp4, hence substring matching.
MIME_EXTENSIONS = [
    ("mp4", "mp4"),
    ("m4a", "mp4"),
    ("aac", "m4a"),
    ("wav", "wav"),
    ("ogg", "ogg"),
    ("oga", "ogg"),
    ("mp3", "mp3"),
    ("mpeg", "mp3"),
    ("flac", "flac"),
    ("webm", "webm"),
]
DEFAULT_EXTENSION = "webm"
ACCEPTED_EXTENSIONS = {"flac", "m4a", "mp3", "mp4", "mpeg", "mpga", "oga", "ogg", "wav", "webm"}


def filename_for_mime(content_type: Optional[str], original_name: Optional[str] = None) -> str:
    """Pick an upload filename whose extension the transcription provider accepts."""
    ct = (content_type or "").lower()
    for needle, extension in MIME_EXTENSIONS:
        if needle in ct:
            return f"recording.{extension}"

    if original_name and "." in original_name:
        extension = original_name.rsplit(".", 1)[1].lower()
        if extension in ACCEPTED_EXTENSIONS:
            return f"recording.{extension}"

    return f"recording.{DEFAULT_EXTENSION}"


class TranscriptionService:
    """Speech-to-text adapter. Performs no retries."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, timeout: float = VOICE_TRANSCRIBE_TIMEOUT_SECONDS):
        self.timeout = timeout
        self.client = client
        if self.client is None and OPENAI_API_KEY:
            self.client = AsyncOpenAI(api_key=OPENAI_API_KEY, timeout=timeout, max_retries=0)

    async def transcribe(
        self,
        audio: bytes,
        mime_type: Optional[str],
        original_name: Optional[str] = None,
    ) -> str:
        """
        Transcribe raw audio bytes to text.

        Args:
            audio: The recorded audio
            mime_type: Content type reported by the browser (may be mislabelled)
            original_name: Uploaded filename, used only when the type is unknown

        Returns:
            Trimmed transcript, never empty

        Raises:
            FileTooLarge, EmptyAudio: before any network call
            ProviderError: provider answered with an HTTP error or is unreachable
            ProviderTimeout: provider did not answer within the timeout
            NoSpeechDetected: provider returned an empty transcript
        """
        if len(audio) > MAX_AUDIO_BYTES:
            raise FileTooLarge(f"Audio file too large (max {MAX_AUDIO_BYTES // (1024 * 1024)}MB)")
        if not audio:
            raise EmptyAudio()

        if not self.client:
            raise ProviderError(None, "OPENAI_API_KEY is not configured")

        filename = filename_for_mime(mime_type, original_name)
        logger.info(f"Transcribing audio: content_type={mime_type} mapped={filename} size={len(audio)}")

        try:
            result = await self.client.audio.transcriptions.create(
                model=VOICE_TRANSCRIBE_MODEL,
                file=(filename, audio, mime_type or "application/octet-stream"),
                language=VOICE_TRANSCRIBE_LANGUAGE,
                timeout=self.timeout,
            )
        except APITimeoutError:
            logger.warning(f"Transcription timed out after {self.timeout}s")
            raise ProviderTimeout()
        except APIStatusError as e:
            logger.error(f"Transcription provider error: {e.status_code} {str(e)[:500]}")
            raise ProviderError(e.status_code, f"Transcription failed ({e.status_code})")
        except APIConnectionError as e:
            logger.error(f"Transcription provider unreachable: {e}")
            raise ProviderError(None, "Transcription provider unreachable")

        text = (getattr(result, "text", None) or "").strip()
        if not text:
            raise NoSpeechDetected()

        return text


transcription_service = TranscriptionService()
