"""Closed vocabularies for leads.

Stored state only ever holds these values; human-readable labels belong to
whatever renders them.
"""

from enum import Enum


class LeadSource(str, Enum):
    """Where an inquiry came in from. Set at intake, never changed."""
    WEBSITE_FORM = "website_form"
    GOOGLE_BUSINESS = "google_business"
    FACEBOOK_LEAD = "facebook_lead"
    INSTAGRAM_LEAD = "instagram_lead"
    PHONE_CALL = "phone_call"
    WALK_IN = "walk_in"
    REFERRAL = "referral"
    OTHER = "other"


class LeadStatus(str, Enum):
    """Lead lifecycle states."""
    NEW = "new"
    CONTACTED = "contacted"
    ASSIGNED = "assigned"
    CONSULTATION_BOOKED = "consultation_booked"
    CONVERTED = "converted"
    LOST = "lost"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LeadStatus.CONVERTED, LeadStatus.LOST})


class LeadBucket(str, Enum):
    """Named lead subsets behind the inbox tabs."""
    UNASSIGNED = "unassigned"
    MY_LEADS = "my_leads"
    CONSULTATION = "consultation"
    CONVERTED = "converted"
    ALL = "all"


class ActivityAction:
    """Activity log action tags."""
    CLAIMED = "claimed"
    ASSIGNED = "assigned"
    NOTE_ADDED = "note_added"
    REVENUE_RECORDED = "revenue_recorded"

    @staticmethod
    def status_changed_to(status: LeadStatus) -> str:
        return f"status_changed_to_{LeadStatus(status).value}"
