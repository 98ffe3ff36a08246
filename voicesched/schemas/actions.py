"""Proposed action types for voice scheduling.

A proposed action is a closed union of three variants, discriminated by
``intent``. Everything coming back from the language model is validated
into one of these before it is logged or shown to the user.
"""

import re
from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

INTENTS = ("create_block", "reschedule_block", "cancel_block")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def normalize_time(value: str) -> str:
    """Return a 24-hour ``HH:MM`` string or raise ValueError."""
    match = _TIME_RE.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValueError(f"Invalid 24-hour time: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError(f"Invalid 24-hour time: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


def normalize_date(value: str) -> str:
    """Return an ISO ``YYYY-MM-DD`` string or raise ValueError."""
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    return date.fromisoformat(value.strip()[:10]).isoformat()


class _Slot(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_local: str
    start_time_local: str

    @field_validator("date_local")
    @classmethod
    def _check_date(cls, v: str) -> str:
        return normalize_date(v)

    @field_validator("start_time_local")
    @classmethod
    def _check_time(cls, v: str) -> str:
        return normalize_time(v)


class Selector(_Slot):
    """Date and start time of an existing entry."""


class NewTime(_Slot):
    """Where a rescheduled entry moves to."""


class Target(BaseModel):
    """Reference to an existing entry, by id or by date and time.

    ``block_id`` wins when both are present.
    """

    model_config = ConfigDict(frozen=True)

    block_id: str | None = None
    selector: Selector | None = None

    @model_validator(mode="after")
    def _require_reference(self) -> "Target":
        if not self.block_id and self.selector is None:
            raise ValueError("target requires a block_id or a selector")
        return self


class WorkoutItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sets: int | None = None
    reps: int | None = None
    weight: str | None = None
    notes: str = ""

    @field_validator("weight", mode="before")
    @classmethod
    def _weight_as_text(cls, v):
        # Models send 80 as often as "80kg"
        return None if v is None else str(v)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_as_text(cls, v):
        return v or ""


class CreateBlock(_Slot):
    intent: Literal["create_block"] = "create_block"
    duration_minutes: int | None = Field(default=None, gt=0, le=1440)
    title: str | None = None
    notes: str | None = None
    workout_items: list[WorkoutItem] = Field(default_factory=list)


class RescheduleBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: Literal["reschedule_block"] = "reschedule_block"
    target: Target
    new_time: NewTime


class CancelBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: Literal["cancel_block"] = "cancel_block"
    target: Target


ProposedAction = Annotated[
    Union[CreateBlock, RescheduleBlock, CancelBlock],
    Field(discriminator="intent"),
]

proposed_action_adapter = TypeAdapter(ProposedAction)


def load_action(data: dict) -> CreateBlock | RescheduleBlock | CancelBlock:
    """Validate a plain dict into a proposed action.

    Raises pydantic.ValidationError on any shape problem.
    """
    return proposed_action_adapter.validate_python(data)


def dump_action(action: CreateBlock | RescheduleBlock | CancelBlock) -> dict:
    return action.model_dump(mode="json")
