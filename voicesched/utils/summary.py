"""Human readable summaries of proposed actions, shown on the confirmation screen."""
from datetime import datetime
from typing import Optional

from voicesched.schemas.actions import CancelBlock, CreateBlock, RescheduleBlock, Target
from voicesched.utils.messages import MSG


def determine_mode(action, now_local_iso: str) -> tuple[Optional[str], Optional[str]]:
    """Return (mode, resolved_datetime) for a proposed action.

    Only create_block has a mode: a start strictly before now means the
    user is logging something already done, otherwise it is scheduled.
    """
    if not isinstance(action, CreateBlock):
        return None, None

    resolved = f"{action.date_local}T{action.start_time_local}:00"
    try:
        now = datetime.fromisoformat(now_local_iso)
    except ValueError:
        return "schedule", resolved

    mode = "log" if datetime.fromisoformat(resolved) < now.replace(tzinfo=None) else "schedule"
    return mode, resolved


def _describe_target(target: Target, short: bool = False) -> str:
    if target.block_id:
        return MSG.BLOCK_LABEL.format(block_id=target.block_id)
    template = MSG.SELECTOR_SHORT if short else MSG.SELECTOR_LABEL
    return template.format(date=target.selector.date_local, time=target.selector.start_time_local)


def summarize_action(action, mode: Optional[str] = None) -> str:
    """One-line description of a proposed action."""
    if isinstance(action, CreateBlock):
        verb = MSG.VERB_LOG if mode == "log" else MSG.VERB_SCHEDULE
        when = MSG.CREATE_WHEN.format(date=action.date_local, time=action.start_time_local)
        return MSG.CREATE_SUMMARY.format(verb=verb, title=action.title or MSG.DEFAULT_TITLE, when=when)

    if isinstance(action, RescheduleBlock):
        return MSG.RESCHEDULE_SUMMARY.format(
            source=_describe_target(action.target, short=True),
            date=action.new_time.date_local,
            time=action.new_time.start_time_local,
        )

    if isinstance(action, CancelBlock):
        return MSG.CANCEL_SUMMARY.format(target=_describe_target(action.target))

    raise TypeError(f"Unknown action type: {type(action).__name__}")
