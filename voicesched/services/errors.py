"""
Error types for the voice command pipeline.

Every error carries the HTTP status and machine code the API layer
returns, so endpoints can translate them without a lookup table.
"""


class VoiceError(Exception):
    """Base exception for voice pipeline errors."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.__doc__.strip().rstrip(".")
        super().__init__(self.message)


# ==================== INPUT ====================

class InvalidInput(VoiceError):
    """Invalid request input."""
    status_code = 400
    code = "INVALID_INPUT"


class FileTooLarge(InvalidInput):
    """Audio file too large."""
    code = "FILE_TOO_LARGE"


class EmptyAudio(InvalidInput):
    """Audio file is empty."""
    code = "EMPTY_AUDIO"


class TranscriptTooLong(InvalidInput):
    """Transcript exceeds maximum length."""
    code = "TRANSCRIPT_TOO_LONG"


class UnsupportedIntent(InvalidInput):
    """Unsupported intent."""
    code = "UNSUPPORTED_INTENT"


class IntentMismatch(InvalidInput):
    """Approved action intent differs from the proposed intent."""
    code = "INTENT_MISMATCH"


# ==================== AUTHORIZATION ====================

class Unauthorized(VoiceError):
    """Unauthorized."""
    status_code = 401
    code = "AUTH_FAILED"


class Forbidden(VoiceError):
    """Resource does not belong to this user."""
    status_code = 403
    code = "FORBIDDEN"


# ==================== NOT FOUND ====================

class NotFound(VoiceError):
    """Not found."""
    status_code = 404
    code = "NOT_FOUND"


class SessionNotFound(NotFound):
    """Session not found."""
    code = "SESSION_NOT_FOUND"


class CommandNotFound(NotFound):
    """Command not found."""
    code = "COMMAND_NOT_FOUND"


class TargetNotFound(NotFound):
    """No matching workout found."""
    code = "TARGET_NOT_FOUND"


# ==================== CONFLICT ====================

class AlreadyProcessed(VoiceError):
    """Raised when a command has already left the proposed state.

    Attributes:
        current_status: Status the command log entry holds now
    """
    status_code = 409
    code = "ALREADY_PROCESSED"

    def __init__(self, current_status: str):
        self.current_status = current_status
        super().__init__(f"Command already has status: {current_status}")


class InvalidTransition(VoiceError):
    """Raised when a state change is not in the allowed transition table."""
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move session from '{current}' to '{requested}'")


class SessionExpired(VoiceError):
    """Session expired."""
    status_code = 410
    code = "SESSION_EXPIRED"


# ==================== PROVIDERS ====================

class ProviderError(VoiceError):
    """Raised when an external provider answers with an HTTP error.

    Attributes:
        status: HTTP status returned by the provider
    """
    status_code = 502
    code = "PROVIDER_ERROR"

    def __init__(self, status: int | None, message: str | None = None):
        self.status = status
        super().__init__(message or f"Provider request failed ({status})")


class ProviderTimeout(VoiceError):
    """Provider request timed out."""
    status_code = 504
    code = "PROVIDER_TIMEOUT"


class NoSpeechDetected(VoiceError):
    """No speech detected in audio."""
    status_code = 422
    code = "NO_SPEECH"


class ParseError(VoiceError):
    """Transcript could not be parsed."""
    status_code = 502
    code = "PARSE_ERROR"


class MalformedResponse(ParseError):
    """Language model returned a malformed action."""
    code = "MALFORMED_RESPONSE"


# ==================== RESOLUTION / EXECUTION ====================

class AmbiguousTarget(VoiceError):
    """Multiple workouts found at that time, please specify which one."""
    status_code = 422
    code = "AMBIGUOUS_TARGET"


class ExecutionFailed(VoiceError):
    """Raised when applying an approved action fails.

    The command log entry has already been moved to ``failed``.

    Attributes:
        original_error: The exception raised while executing
    """
    status_code = 422
    code = "EXECUTION_FAILED"

    def __init__(self, original_error: Exception):
        self.original_error = original_error
        message = getattr(original_error, "message", None) or str(original_error) or "Execution failed"
        super().__init__(message)
