"""Resolves a spoken reference to exactly one schedule entry."""
import logging

from sqlalchemy.orm import Session

from voicesched.models.block import Block
from voicesched.schemas.actions import Target
from voicesched.services.errors import AmbiguousTarget, Forbidden, TargetNotFound

logger = logging.getLogger(__name__)

# The only entry type voice commands may touch
MANAGED_BLOCK_TYPE = "workout"


def resolve_target(db: Session, user_id: str, target: Target) -> str:
    """
    Return the id of the single entry ``target`` refers to.

    Raises:
        TargetNotFound: nothing matches, or the entry is deleted or not a workout
        Forbidden: a direct id points at another user's entry
        AmbiguousTarget: the selector matches more than one entry
    """
    user_id = str(user_id)

    if target.block_id:
        block = db.get(Block, target.block_id)
        if block is None:
            raise TargetNotFound("Target workout not found or already deleted")
        if block.user_id != user_id:
            logger.warning(f"User {user_id} referenced a workout they do not own")
            raise Forbidden("Target workout does not belong to this user")
        if block.block_type != MANAGED_BLOCK_TYPE or block.deleted_at is not None:
            raise TargetNotFound("Target workout not found or already deleted")
        return block.id

    selector = target.selector
    matches = (
        db.query(Block.id)
        .filter(
            Block.user_id == user_id,
            Block.date == selector.date_local,
            Block.start_time == selector.start_time_local,
            Block.block_type == MANAGED_BLOCK_TYPE,
            Block.deleted_at.is_(None),
        )
        .limit(2)
        .all()
    )

    if not matches:
        raise TargetNotFound(
            f"No matching workout found on {selector.date_local} at {selector.start_time_local}"
        )
    if len(matches) > 1:
        raise AmbiguousTarget()

    return matches[0].id
