from typing import Any, Optional

from pydantic import BaseModel


class CaptureSessionRequest(BaseModel):
    return_url: Optional[str] = None


class ParseRequest(BaseModel):
    transcript: Optional[str] = None


class ExecuteRequest(BaseModel):
    """Approved action is validated by the executor, not here, so an
    unknown intent is reported as UNSUPPORTED_INTENT rather than a schema error."""

    command_id: Optional[str] = None
    approved_action: Optional[dict[str, Any]] = None
