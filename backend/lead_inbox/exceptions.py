"""Error taxonomy for the lead routing engine.

Every error has a stable ``kind`` so remote callers can tell outcomes apart
without parsing messages. Errors about an existing lead carry its current
state (``lead``) so the caller can show the true state immediately.
"""

from typing import Any, Optional


class LeadInboxError(Exception):
    """Base class for all engine outcomes reported to callers."""

    kind = "error"

    def __init__(self, message: str, lead: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.lead = lead


class LeadNotFound(LeadInboxError):
    kind = "not_found"

    def __init__(self, lead_id: Any):
        super().__init__(f"Lead {lead_id} not found")
        self.lead_id = lead_id


class AlreadyClaimed(LeadInboxError):
    """Lost a claim race: somebody else owns the lead now."""

    kind = "already_claimed"


class IllegalTransition(LeadInboxError):
    kind = "illegal_transition"


class LeadConflict(LeadInboxError):
    """Conditional update saw a different stored value than expected."""

    kind = "conflict"


class RevenueAlreadyRecorded(LeadConflict):
    pass


class EmptyNote(LeadInboxError):
    kind = "empty_note"

    def __init__(self, message: str = "Note must not be blank"):
        super().__init__(message)


class InvalidLeadData(LeadInboxError):
    kind = "invalid_data"
