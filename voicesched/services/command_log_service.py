"""
Command log: one row per parse attempt.

A row is created as ``proposed`` and moved exactly once to ``executed`` or
``failed``. Both moves are compare-and-set updates on the stored status,
so two concurrent executions of the same command cannot both win.
"""
import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from voicesched.models.base import utcnow
from voicesched.models.command_log import CommandLogEntry
from voicesched.schemas.actions import dump_action
from voicesched.services.errors import CommandNotFound, Forbidden
from voicesched.services.intent_service import ParsedIntent
from voicesched.utils.config import MAX_TRANSCRIPT_LENGTH

logger = logging.getLogger(__name__)

PROPOSED = "proposed"
EXECUTED = "executed"
FAILED = "failed"


def create_entry(
    db: Session,
    user_id: str,
    transcript: str,
    parsed: ParsedIntent,
    input_type: str = "text",
) -> CommandLogEntry:
    """Record a parse attempt with status ``proposed`` and commit it."""
    entry = CommandLogEntry(
        user_id=str(user_id),
        input_type=input_type,
        intent=parsed.action.intent,
        raw_transcript=transcript[:MAX_TRANSCRIPT_LENGTH],
        proposed_action=dump_action(parsed.action),
        confidence=parsed.confidence,
        needs_clarification=parsed.needs_clarification,
        clarification_questions=list(parsed.clarification_questions),
        status=PROPOSED,
    )
    db.add(entry)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(entry)
    logger.info(f"Command {entry.id} proposed for user {user_id}: {entry.intent}")
    return entry


def get_owned_entry(db: Session, command_id: str, user_id: str) -> CommandLogEntry:
    """Load a command log entry, checking existence before ownership."""
    entry = db.get(CommandLogEntry, command_id)
    if entry is None:
        raise CommandNotFound()
    if entry.user_id != str(user_id):
        logger.warning(f"User {user_id} attempted to access a command they do not own")
        raise Forbidden("Command does not belong to this user")
    return entry


def current_status(db: Session, command_id: str) -> Optional[str]:
    db.expire_all()
    entry = db.get(CommandLogEntry, command_id)
    return entry.status if entry else None


def claim_executed(db: Session, command_id: str, block_id: str) -> bool:
    """Move ``proposed`` -> ``executed`` inside the caller's transaction.

    Returns False when another attempt already moved the entry; the caller
    must then roll back whatever it mutated. Does not commit.
    """
    result = db.execute(
        update(CommandLogEntry)
        .where(CommandLogEntry.id == command_id, CommandLogEntry.status == PROPOSED)
        .values(status=EXECUTED, block_id=block_id, executed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_failed(db: Session, command_id: str, error_message: str) -> bool:
    """Move ``proposed`` -> ``failed`` and commit. False if no longer proposed."""
    try:
        result = db.execute(
            update(CommandLogEntry)
            .where(CommandLogEntry.id == command_id, CommandLogEntry.status == PROPOSED)
            .values(status=FAILED, error_message=error_message[:1000])
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result.rowcount == 1
