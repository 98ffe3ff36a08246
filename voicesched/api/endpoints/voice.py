"""
Voice scheduling API endpoints.

Inline flow: /transcribe -> /parse -> (user confirms) -> /execute
Breakout flow: /capture-session -> /upload (capture page) -> /session-result (poll)
"""
from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session
from typing import Optional
import logging

from voicesched.db.session import get_db
from voicesched.schemas.voice import CaptureSessionRequest, ExecuteRequest, ParseRequest
from voicesched.services.auth_service import AuthenticatedUser, is_authorized, resolve_user
from voicesched.services.errors import FileTooLarge, InvalidInput, VoiceError
from voicesched.services.pipeline_service import VoicePipeline, voice_pipeline
from voicesched.utils.config import MAX_AUDIO_BYTES

router = APIRouter()
logger = logging.getLogger(__name__)


async def get_current_user(authorization: Optional[str] = Header(None)) -> AuthenticatedUser:
    user = await resolve_user(authorization)
    if user is None or not is_authorized(user.id):
        if user is not None:
            logger.info(f"Unauthorized access attempt from user_id: {user.id}")
        raise HTTPException(status_code=401, detail={"error": "Unauthorized", "code": "AUTH_FAILED"})
    return user


def get_pipeline() -> VoicePipeline:
    return voice_pipeline


def voice_http_error(e: VoiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail={"error": e.message, "code": e.code})


def internal_error(context: str, e: Exception) -> HTTPException:
    logger.error(f"[{context}] Error: {e}", exc_info=True)
    return HTTPException(status_code=500, detail={"error": str(e) or "Unknown error", "code": "INTERNAL_ERROR"})


async def read_audio(audio: Optional[UploadFile]) -> bytes:
    """Read an uploaded file, refusing oversized uploads before buffering them."""
    if audio is None:
        raise InvalidInput("audio file is required")
    if audio.size is not None and audio.size > MAX_AUDIO_BYTES:
        raise FileTooLarge(f"Audio file too large (max {MAX_AUDIO_BYTES // (1024 * 1024)}MB)")
    return await audio.read()


@router.post("/capture-session")
async def create_capture_session(
    request: Request,
    payload: Optional[CaptureSessionRequest] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Create a breakout capture session (10 min TTL)."""
    try:
        return pipeline.create_capture_session(
            db,
            user.id,
            return_url=payload.return_url if payload else None,
            base_url=str(request.base_url),
        )
    except VoiceError as e:
        raise voice_http_error(e)
    except Exception as e:
        raise internal_error("VoiceCaptureSession", e)


@router.post("/upload")
async def upload_audio(
    audio: Optional[UploadFile] = File(None),
    session_id: Optional[str] = Form(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Transcribe and parse audio recorded on the capture page, storing the result on the session."""
    try:
        if not session_id:
            raise InvalidInput("session_id required")
        audio_bytes = await read_audio(audio)
        return await pipeline.upload_audio(
            db,
            session_id,
            user.id,
            audio_bytes,
            mime_type=audio.content_type,
            filename=audio.filename,
        )
    except VoiceError as e:
        raise voice_http_error(e)
    except Exception as e:
        raise internal_error("VoiceUpload", e)


@router.get("/session-result")
async def session_result(
    session_id: Optional[str] = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Poll a capture session. Expiry is evaluated on every read."""
    try:
        if not session_id:
            raise InvalidInput("session_id required")
        return pipeline.poll_session(db, session_id, user.id)
    except VoiceError as e:
        raise voice_http_error(e)
    except Exception as e:
        raise internal_error("VoiceSessionResult", e)


@router.post("/transcribe")
async def transcribe_audio(
    audio: Optional[UploadFile] = File(None),
    user: AuthenticatedUser = Depends(get_current_user),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Inline transcription; no session, no state."""
    try:
        audio_bytes = await read_audio(audio)
        transcript = await pipeline.transcribe(user.id, audio_bytes, audio.content_type, audio.filename)
        return {"transcript": transcript}
    except VoiceError as e:
        raise voice_http_error(e)
    except Exception as e:
        raise internal_error("VoiceTranscribe", e)


@router.post("/parse")
async def parse_transcript(
    payload: ParseRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Turn a transcript into a proposed action awaiting confirmation."""
    try:
        outcome = await pipeline.parse_transcript(db, user.id, payload.transcript)
        return outcome.as_dict()
    except VoiceError as e:
        raise voice_http_error(e)
    except Exception as e:
        raise internal_error("VoiceParse", e)


@router.post("/execute")
async def execute_command(
    payload: ExecuteRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    pipeline: VoicePipeline = Depends(get_pipeline),
):
    """Apply a confirmed action. A command executes at most once."""
    try:
        return pipeline.execute(db, user.id, payload.command_id, payload.approved_action)
    except VoiceError as e:
        raise voice_http_error(e)
    except Exception as e:
        raise internal_error("VoiceExecute", e)
