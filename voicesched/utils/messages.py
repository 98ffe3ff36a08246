"""
Centralized user-facing strings for voice scheduling.

Usage:
    from voicesched.utils.messages import MSG

    summary = MSG.CREATE_SUMMARY.format(verb="Schedule", title="Leg day", when="")
"""


class Messages:
    """All user-facing messages."""

    # ==================== PROPOSED ACTIONS ====================
    CREATE_SUMMARY = "{verb} {title}{when}"
    CREATE_WHEN = " on {date} at {time}"
    VERB_SCHEDULE = "Schedule"
    VERB_LOG = "Log"
    RESCHEDULE_SUMMARY = "Move workout from {source} to {date} at {time}"
    CANCEL_SUMMARY = "Cancel workout {target}"
    SELECTOR_LABEL = "on {date} at {time}"
    SELECTOR_SHORT = "{date} {time}"
    BLOCK_LABEL = "{block_id}"

    # ==================== EXECUTION RESULTS ====================
    CREATED = "Scheduled: {title} at {start}-{end} on {date}"
    RESCHEDULED = "Moved to {date} at {time}"
    CANCELLED = "Workout cancelled"

    # ==================== CLARIFICATION ====================
    CLARIFY_GENERIC = "Could you clarify what you meant?"

    # ==================== DEFAULTS ====================
    DEFAULT_TITLE = "Workout"


# Singleton instance for easy import
MSG = Messages()
