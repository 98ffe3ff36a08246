"""
Voice command pipeline.

Sequences transcription, intent parsing, the command log, capture
sessions and the executor for both flows:

- inline: the client already holds the audio or transcript
  (``transcribe`` then ``parse_transcript``)
- breakout: the client opens a capture page elsewhere
  (``create_capture_session``, ``upload_audio``, ``poll_session``)

Both end with ``execute`` once the user has confirmed the proposed action.
Provider calls are bounded by a deadline and no database transaction is
held open across them. A result that arrives after the session expired
is discarded.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from voicesched.models.profile import Profile
from voicesched.schemas.actions import dump_action
from voicesched.services import command_log_service
from voicesched.services.capture_session_service import (
    CREATED,
    EXPIRED,
    FAILED,
    PARSED,
    TRANSCRIBED,
    UPLOADED,
    CaptureSessionService,
    capture_session_service,
)
from voicesched.services.errors import (
    EmptyAudio,
    FileTooLarge,
    InvalidInput,
    InvalidTransition,
    ProviderTimeout,
    SessionExpired,
    TranscriptTooLong,
    VoiceError,
)
from voicesched.services.executor import execute_command
from voicesched.services.intent_service import IntentService, ParsedIntent, intent_service
from voicesched.services.transcription_service import TranscriptionService, transcription_service
from voicesched.utils.config import (
    DEFAULT_TIMEZONE,
    MAX_AUDIO_BYTES,
    MAX_TRANSCRIPT_LENGTH,
    PUBLIC_APP_URL,
    VOICE_PARSE_TIMEOUT_SECONDS,
    VOICE_TRANSCRIBE_TIMEOUT_SECONDS,
)
from voicesched.utils.summary import determine_mode, summarize_action

logger = logging.getLogger(__name__)

# Extra time on top of the provider client's own timeout
DEADLINE_SLACK_SECONDS = 2.0


@dataclass
class ParseOutcome:
    command_id: str
    proposed_action: dict
    summary_text: str
    needs_clarification: bool
    confidence: float
    clarification_questions: list[str] = field(default_factory=list)
    mode: Optional[str] = None
    resolved_datetime: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


def user_timezone(db: Session, user_id: str) -> str:
    """Timezone from the user's profile, or the default when missing or unknown."""
    profile = db.get(Profile, str(user_id))
    timezone = profile.timezone if profile and profile.timezone else DEFAULT_TIMEZONE
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{timezone}' for user {user_id}, using {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE
    return timezone


def now_local_iso(timezone: str, now: Optional[datetime] = None) -> str:
    """Current wall-clock time in ``timezone`` as ``YYYY-MM-DDTHH:MM:SS``."""
    now = now or datetime.now(ZoneInfo("UTC"))
    return now.astimezone(ZoneInfo(timezone)).strftime("%Y-%m-%dT%H:%M:%S")


def validate_transcript(transcript) -> str:
    if not transcript or not isinstance(transcript, str):
        raise InvalidInput("transcript is required")
    transcript = transcript.strip()
    if not transcript:
        raise InvalidInput("transcript cannot be empty")
    if len(transcript) > MAX_TRANSCRIPT_LENGTH:
        raise TranscriptTooLong(f"transcript exceeds maximum length of {MAX_TRANSCRIPT_LENGTH} characters")
    return transcript


def validate_audio(audio: Optional[bytes]) -> None:
    if audio is None:
        raise InvalidInput("audio file is required")
    if len(audio) > MAX_AUDIO_BYTES:
        raise FileTooLarge(f"Audio file too large (max {MAX_AUDIO_BYTES // (1024 * 1024)}MB)")
    if not audio:
        raise EmptyAudio()


class VoicePipeline:
    def __init__(
        self,
        transcriber: TranscriptionService = transcription_service,
        parser: IntentService = intent_service,
        sessions: CaptureSessionService = capture_session_service,
        transcribe_deadline: float = VOICE_TRANSCRIBE_TIMEOUT_SECONDS + DEADLINE_SLACK_SECONDS,
        parse_deadline: float = VOICE_PARSE_TIMEOUT_SECONDS + DEADLINE_SLACK_SECONDS,
    ):
        self.transcriber = transcriber
        self.parser = parser
        self.sessions = sessions
        self.transcribe_deadline = transcribe_deadline
        self.parse_deadline = parse_deadline

    # ==================== PROVIDER STEPS ====================

    async def _transcribe(self, audio: bytes, mime_type: Optional[str], filename: Optional[str]) -> str:
        try:
            return await asyncio.wait_for(
                self.transcriber.transcribe(audio, mime_type, filename),
                timeout=self.transcribe_deadline,
            )
        except asyncio.TimeoutError:
            raise ProviderTimeout("Transcription timed out")

    async def _parse(self, db: Session, user_id: str, transcript: str) -> tuple[ParsedIntent, str]:
        timezone = user_timezone(db, user_id)
        now_iso = now_local_iso(timezone)
        # Do not hold a transaction open across the provider call
        db.rollback()
        try:
            parsed = await asyncio.wait_for(
                self.parser.parse(transcript, timezone, now_iso),
                timeout=self.parse_deadline,
            )
        except asyncio.TimeoutError:
            raise ProviderTimeout("Language model request timed out")
        return parsed, now_iso

    def _record(self, db: Session, user_id: str, transcript: str, parsed: ParsedIntent, now_iso: str, input_type: str) -> ParseOutcome:
        entry = command_log_service.create_entry(db, user_id, transcript, parsed, input_type=input_type)
        mode, resolved = determine_mode(parsed.action, now_iso)
        return ParseOutcome(
            command_id=entry.id,
            proposed_action=dump_action(parsed.action),
            summary_text=summarize_action(parsed.action, mode),
            needs_clarification=parsed.needs_clarification,
            confidence=parsed.confidence,
            clarification_questions=list(parsed.clarification_questions),
            mode=mode,
            resolved_datetime=resolved,
        )

    # ==================== INLINE FLOW ====================

    async def transcribe(
        self,
        user_id: str,
        audio: Optional[bytes],
        mime_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        validate_audio(audio)
        transcript = await self._transcribe(audio, mime_type, filename)
        logger.info(f"Inline transcription for user {user_id}: {len(transcript)} chars")
        return transcript

    async def parse_transcript(self, db: Session, user_id: str, transcript, input_type: str = "text") -> ParseOutcome:
        transcript = validate_transcript(transcript)
        parsed, now_iso = await self._parse(db, user_id, transcript)
        return self._record(db, user_id, transcript, parsed, now_iso, input_type)

    # ==================== BREAKOUT FLOW ====================

    def create_capture_session(
        self,
        db: Session,
        user_id: str,
        return_url: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> dict:
        session = self.sessions.create(db, user_id, return_url)
        origin = (PUBLIC_APP_URL or base_url or "").rstrip("/")
        return {
            "session_id": session.id,
            "capture_url": f"{origin}/voice-capture?session_id={session.id}",
            "return_url": session.return_url,
        }

    def _discard_if_expired(self, db: Session, session_id: str) -> None:
        session = self.sessions.load(db, session_id)
        if self.sessions.is_expired(session):
            logger.info(f"Capture session {session_id} expired mid-pipeline, discarding result")
            self.sessions.expire(db, session)
            raise SessionExpired()

    def _abort(self, db: Session, session_id: str, expected: str, message: str) -> None:
        session = self.sessions.load(db, session_id)
        if self.sessions.is_expired(session):
            self.sessions.expire(db, session)
        else:
            self.sessions.fail(db, session_id, expected, message)

    async def upload_audio(
        self,
        db: Session,
        session_id: str,
        user_id: str,
        audio: Optional[bytes],
        mime_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> dict:
        """
        Run the breakout pipeline for one uploaded recording.

        Returns the parse result, which is also stored on the session for
        the poller. Any step error marks the session failed and is re-raised.
        """
        session = self.sessions.load_owned(db, session_id, user_id)
        self.sessions.ensure_active(db, session)
        validate_audio(audio)

        self.sessions.transition(db, session_id, CREATED, UPLOADED)
        logger.info(f"Capture session {session_id}: received {mime_type} audio, {len(audio)} bytes")

        step = UPLOADED
        try:
            transcript = await self._transcribe(audio, mime_type, filename)
            self._discard_if_expired(db, session_id)
            self.sessions.transition(db, session_id, UPLOADED, TRANSCRIBED, transcript=transcript)
            step = TRANSCRIBED

            if len(transcript) > MAX_TRANSCRIPT_LENGTH:
                raise TranscriptTooLong("Transcript exceeds maximum length")

            parsed, now_iso = await self._parse(db, user_id, transcript)
            self._discard_if_expired(db, session_id)
            outcome = self._record(db, user_id, transcript, parsed, now_iso, input_type="audio")
            try:
                self.sessions.transition(db, session_id, TRANSCRIBED, PARSED, parse_result=outcome.as_dict())
            except InvalidTransition:
                # The logged command is unreachable once the session moved on without it
                command_log_service.mark_failed(db, outcome.command_id, "Capture session closed before the result was stored")
                self._discard_if_expired(db, session_id)
                raise
        except SessionExpired:
            raise
        except Exception as e:
            db.rollback()
            message = e.message if isinstance(e, VoiceError) else (str(e) or "Capture failed")
            logger.warning(f"Capture session {session_id} failed at {step}: {message}")
            self._abort(db, session_id, step, message)
            raise

        logger.info(f"Capture session {session_id} parsed: command {outcome.command_id}")
        return {"status": PARSED, "transcript": transcript, **outcome.as_dict()}

    def poll_session(self, db: Session, session_id: str, user_id: str) -> dict:
        """Current snapshot of a session. Never blocks, never writes."""
        snapshot = self.sessions.snapshot(self.sessions.load_owned(db, session_id, user_id))

        if snapshot.status == PARSED and snapshot.parse_result:
            return {"status": PARSED, "transcript": snapshot.transcript, **snapshot.parse_result}

        if snapshot.status == FAILED:
            return {
                "status": FAILED,
                "transcript": snapshot.transcript,
                "error_message": snapshot.error_message or "Unknown error",
            }

        if snapshot.status == EXPIRED:
            return {"status": EXPIRED, "transcript": None}

        return {"status": snapshot.status, "transcript": snapshot.transcript}

    # ==================== EXECUTION ====================

    def execute(self, db: Session, user_id: str, command_id: Optional[str], approved_action) -> dict:
        if not command_id or approved_action is None:
            raise InvalidInput("command_id and approved_action are required")
        result = execute_command(db, command_id, user_id, approved_action)
        return {"status": "executed", "block_id": result.block_id, "result_summary": result.summary}


voice_pipeline = VoicePipeline()
