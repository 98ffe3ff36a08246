"""
Capture session state machine for the breakout recording flow.

Success path: created -> uploaded -> transcribed -> parsed.
Any of created/uploaded/transcribed may move to failed (with an error
message) or expired. parsed, failed and expired are terminal.

Every move goes through ``transition``, which checks the table below,
requires the payload the new status implies, and writes status and
payload in a single compare-and-set UPDATE. A poller therefore never sees
``transcribed`` without a transcript.

Expiry is also evaluated on read: any session past ``expires_at`` other
than a parsed one is reported as expired whatever was stored last.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from voicesched.models.base import utcnow
from voicesched.models.capture_session import CaptureSession
from voicesched.services.errors import Forbidden, InvalidTransition, SessionExpired, SessionNotFound
from voicesched.utils.config import CAPTURE_SESSION_TTL_MINUTES

logger = logging.getLogger(__name__)

CREATED = "created"
UPLOADED = "uploaded"
TRANSCRIBED = "transcribed"
PARSED = "parsed"
EXPIRED = "expired"
FAILED = "failed"

ALLOWED_TRANSITIONS = {
    CREATED: {UPLOADED, FAILED, EXPIRED},
    UPLOADED: {TRANSCRIBED, FAILED, EXPIRED},
    TRANSCRIBED: {PARSED, FAILED, EXPIRED},
    PARSED: set(),
    FAILED: set(),
    EXPIRED: set(),
}

# Payload a status must arrive with; anything else may not be written
REQUIRED_FIELDS = {
    TRANSCRIBED: {"transcript"},
    PARSED: {"parse_result"},
    FAILED: {"error_message"},
}

# States the sweep may still move to expired
EXPIRABLE = {CREATED, UPLOADED, TRANSCRIBED}
TERMINAL = {PARSED, FAILED, EXPIRED}


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session with expiry already applied."""

    id: str
    user_id: str
    status: str
    return_url: Optional[str]
    transcript: Optional[str]
    parse_result: Optional[dict]
    error_message: Optional[str]
    expires_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL


class CaptureSessionService:
    """Store and state machine for breakout capture sessions."""

    def __init__(self, ttl_minutes: int = CAPTURE_SESSION_TTL_MINUTES, clock: Callable[[], datetime] = utcnow):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    # ==================== READS ====================

    def is_expired(self, session: CaptureSession, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        # A parsed result stays readable after the deadline
        return session.status != PARSED and now >= session.expires_at

    def effective_status(self, session: CaptureSession, now: Optional[datetime] = None) -> str:
        return EXPIRED if self.is_expired(session, now) else session.status

    def snapshot(self, session: CaptureSession) -> SessionSnapshot:
        return SessionSnapshot(
            id=session.id,
            user_id=session.user_id,
            status=self.effective_status(session),
            return_url=session.return_url,
            transcript=session.transcript,
            parse_result=session.parse_result,
            error_message=session.error_message,
            expires_at=session.expires_at,
        )

    def load(self, db: Session, session_id: str) -> CaptureSession:
        session = db.get(CaptureSession, session_id, populate_existing=True)
        if session is None:
            raise SessionNotFound()
        return session

    def load_owned(self, db: Session, session_id: str, user_id: str) -> CaptureSession:
        session = self.load(db, session_id)
        if session.user_id != str(user_id):
            logger.warning(f"User {user_id} attempted to access capture session {session_id}")
            raise Forbidden("Session does not belong to this user")
        return session

    # ==================== WRITES ====================

    def create(self, db: Session, user_id: str, return_url: Optional[str] = None) -> CaptureSession:
        now = self.clock()
        session = CaptureSession(
            user_id=str(user_id),
            status=CREATED,
            return_url=return_url,
            expires_at=now + self.ttl,
            created_at=now,
            updated_at=now,
        )
        db.add(session)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(session)
        logger.info(f"Capture session {session.id} created for user {user_id}")
        return session

    def transition(self, db: Session, session_id: str, expected: str, new_status: str, **fields) -> CaptureSession:
        """
        Move a session from ``expected`` to ``new_status`` and store ``fields``.

        Raises:
            InvalidTransition: the move is not in the table, the payload does
                not match the new status, or the stored status is no longer
                ``expected``
        """
        if new_status not in ALLOWED_TRANSITIONS.get(expected, set()):
            raise InvalidTransition(expected, new_status)

        required = REQUIRED_FIELDS.get(new_status, set())
        if set(fields) != required or any(fields[name] in (None, "") for name in required):
            raise InvalidTransition(expected, new_status)

        try:
            result = db.execute(
                update(CaptureSession)
                .where(CaptureSession.id == session_id, CaptureSession.status == expected)
                .values(status=new_status, updated_at=self.clock(), **fields)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        session = self.load(db, session_id)
        if result.rowcount != 1:
            raise InvalidTransition(session.status, new_status)

        logger.info(f"Capture session {session_id}: {expected} -> {new_status}")
        return session

    def expire(self, db: Session, session: CaptureSession) -> None:
        """Persist ``expired`` for a session found past its deadline."""
        if session.status not in EXPIRABLE:
            return
        try:
            self.transition(db, session.id, session.status, EXPIRED)
        except InvalidTransition:
            # Another writer moved it first
            logger.info(f"Capture session {session.id} changed before it could be expired")

    def ensure_active(self, db: Session, session: CaptureSession) -> None:
        """Raise SessionExpired (persisting the status) once past the deadline."""
        if session.status == EXPIRED or self.is_expired(session):
            self.expire(db, session)
            raise SessionExpired()

    def fail(self, db: Session, session_id: str, expected: str, error_message: str) -> None:
        try:
            self.transition(db, session_id, expected, FAILED, error_message=error_message[:1000])
        except InvalidTransition as e:
            logger.warning(f"Could not mark capture session {session_id} failed: {e}")

    # ==================== MAINTENANCE ====================

    def sweep_expired(self, db: Session) -> int:
        """Persist ``expired`` on every non-terminal session past its deadline."""
        now = self.clock()
        try:
            result = db.execute(
                update(CaptureSession)
                .where(CaptureSession.status.in_(sorted(EXPIRABLE)), CaptureSession.expires_at <= now)
                .values(status=EXPIRED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return result.rowcount

    def purge_older_than(self, db: Session, retention: timedelta) -> int:
        """Delete sessions whose deadline passed more than ``retention`` ago."""
        cutoff = self.clock() - retention
        try:
            result = db.execute(
                delete(CaptureSession)
                .where(CaptureSession.expires_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return result.rowcount


capture_session_service = CaptureSessionService()
