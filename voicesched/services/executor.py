"""
Executor: the only code that mutates schedule entries.

Preconditions are checked in order (entry exists, caller owns it, it is
still ``proposed``, the approved intent is supported) before anything is
written. The schedule mutation and the ``proposed -> executed`` move
share one transaction; if the compare-and-set loses, the mutation is
rolled back. Any failure while applying the action moves the entry to
``failed`` before the error reaches the caller.
"""
import logging
from dataclasses import dataclass

from pydantic import ValidationError
from sqlalchemy import update
from sqlalchemy.orm import Session

from voicesched.models.base import utcnow
from voicesched.models.block import Block
from voicesched.schemas.actions import INTENTS, CancelBlock, CreateBlock, RescheduleBlock, load_action
from voicesched.services import command_log_service
from voicesched.services.errors import (
    AlreadyProcessed,
    ExecutionFailed,
    IntentMismatch,
    InvalidInput,
    TargetNotFound,
    UnsupportedIntent,
    VoiceError,
)
from voicesched.services.target_resolver import MANAGED_BLOCK_TYPE, resolve_target
from voicesched.utils.config import DEFAULT_WORKOUT_DURATION_MINUTES
from voicesched.utils.messages import MSG

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


@dataclass
class ExecutionResult:
    block_id: str
    summary: str


def compute_end_time(start_time_local: str, duration_minutes: int) -> str:
    """Add a duration to an ``HH:MM`` start, wrapping past midnight."""
    hours, minutes = (int(part) for part in start_time_local.split(":"))
    total = (hours * 60 + minutes + duration_minutes) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def _load_approved(approved_action):
    if isinstance(approved_action, (CreateBlock, RescheduleBlock, CancelBlock)):
        return approved_action
    if not isinstance(approved_action, dict):
        raise InvalidInput("approved_action must be an object")

    intent = approved_action.get("intent")
    if intent not in INTENTS:
        raise UnsupportedIntent(f"Invalid intent: {intent}")

    try:
        return load_action(approved_action)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidInput(f"Invalid {intent} action: {location} {first.get('msg')}".strip())


def _create(db: Session, user_id: str, command_id: str, action: CreateBlock) -> ExecutionResult:
    duration = action.duration_minutes or DEFAULT_WORKOUT_DURATION_MINUTES
    end_time = compute_end_time(action.start_time_local, duration)
    title = action.title or MSG.DEFAULT_TITLE

    block = Block(
        user_id=user_id,
        date=action.date_local,
        start_time=action.start_time_local,
        end_time=end_time,
        block_type=MANAGED_BLOCK_TYPE,
        title=title,
        notes=action.notes,
        payload={
            "source": "voice",
            "voice": {"command_id": command_id},
            "workout": {
                "duration_minutes": duration,
                "items": [item.model_dump() for item in action.workout_items],
            },
        },
        is_planned=True,
    )
    db.add(block)
    db.flush()

    return ExecutionResult(
        block_id=block.id,
        summary=MSG.CREATED.format(title=title, start=action.start_time_local, end=end_time, date=action.date_local),
    )


def _reschedule(db: Session, user_id: str, action: RescheduleBlock) -> ExecutionResult:
    block_id = resolve_target(db, user_id, action.target)

    # Scoped by owner as well as id
    result = db.execute(
        update(Block)
        .where(Block.id == block_id, Block.user_id == user_id, Block.deleted_at.is_(None))
        .values(date=action.new_time.date_local, start_time=action.new_time.start_time_local)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TargetNotFound("Target workout not found or already deleted")

    return ExecutionResult(
        block_id=block_id,
        summary=MSG.RESCHEDULED.format(date=action.new_time.date_local, time=action.new_time.start_time_local),
    )


def _cancel(db: Session, user_id: str, action: CancelBlock) -> ExecutionResult:
    block_id = resolve_target(db, user_id, action.target)

    result = db.execute(
        update(Block)
        .where(Block.id == block_id, Block.user_id == user_id, Block.deleted_at.is_(None))
        .values(deleted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise TargetNotFound("Target workout not found or already deleted")

    return ExecutionResult(block_id=block_id, summary=MSG.CANCELLED)


def _apply(db: Session, user_id: str, command_id: str, action) -> ExecutionResult:
    if isinstance(action, CreateBlock):
        return _create(db, user_id, command_id, action)
    if isinstance(action, RescheduleBlock):
        return _reschedule(db, user_id, action)
    if isinstance(action, CancelBlock):
        return _cancel(db, user_id, action)
    raise UnsupportedIntent(f"Invalid intent: {getattr(action, 'intent', None)}")


def execute_command(db: Session, command_id: str, user_id: str, approved_action) -> ExecutionResult:
    """
    Apply an approved action at most once.

    Args:
        db: Database session (committed or rolled back here)
        command_id: Command log entry created by the parse step
        user_id: Caller; must own the entry
        approved_action: The action the user confirmed, as a dict or model

    Raises:
        CommandNotFound, Forbidden, AlreadyProcessed, UnsupportedIntent,
        InvalidInput, IntentMismatch: precondition failures, nothing written
        TargetNotFound, AmbiguousTarget, Forbidden, ExecutionFailed: the
        entry has been moved to ``failed``
    """
    user_id = str(user_id)
    entry = command_log_service.get_owned_entry(db, command_id, user_id)
    if entry.status != command_log_service.PROPOSED:
        raise AlreadyProcessed(entry.status)

    action = _load_approved(approved_action)
    if action.intent != entry.intent:
        raise IntentMismatch(f"Approved intent {action.intent} does not match proposed intent {entry.intent}")

    try:
        result = _apply(db, user_id, command_id, action)
        if not command_log_service.claim_executed(db, command_id, result.block_id):
            db.rollback()
            raise AlreadyProcessed(command_log_service.current_status(db, command_id) or "unknown")
        db.commit()
    except AlreadyProcessed:
        raise
    except Exception as e:
        db.rollback()
        message = getattr(e, "message", None) or str(e) or "Execution failed"
        if not command_log_service.mark_failed(db, command_id, message):
            raise AlreadyProcessed(command_log_service.current_status(db, command_id) or "unknown")
        logger.warning(f"Command {command_id} failed for user {user_id}: {message}")
        if isinstance(e, VoiceError):
            raise
        raise ExecutionFailed(e) from e

    logger.info(f"Command {command_id} executed for user {user_id}: {action.intent} block={result.block_id}")
    return result
