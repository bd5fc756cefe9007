# backend/lead_inbox/services/lead_filters.py
"""
Lead filters and bucket predicates.

Lists and badge counts are both built from ``LeadFilter.conditions()`` so a
bucket's count and its list contents can never disagree in meaning.
"""

from dataclasses import dataclass, replace
from typing import Any, List, Optional, Union

from sqlalchemy import or_

from lead_inbox.enums import LeadBucket, LeadSource, LeadStatus
from lead_inbox.exceptions import InvalidLeadData
from lead_inbox.models import Lead

ALL = "all"
UNASSIGNED = "unassigned"


@dataclass(frozen=True)
class LeadFilter:
    """
    Filter shape consumed by list views.

    ``source`` / ``location`` accept "all" (no restriction); ``assigned_to``
    accepts a user id, "unassigned" or "all".
    """
    search: Optional[str] = None
    source: Union[LeadSource, str, None] = None
    location: Optional[str] = None
    assigned_to: Optional[str] = None
    status: Union[LeadStatus, str, None] = None

    def conditions(self) -> List[Any]:
        conditions = []

        if self.search and self.search.strip():
            term = self.search.strip()
            conditions.append(
                or_(
                    Lead.name.icontains(term, autoescape=True),
                    Lead.email.icontains(term, autoescape=True),
                    Lead.phone.icontains(term, autoescape=True),
                )
            )

        if self.source and self.source != ALL:
            try:
                conditions.append(Lead.source == LeadSource(self.source))
            except ValueError:
                raise InvalidLeadData(f"Invalid lead source: {self.source!r}")

        if self.location and self.location != ALL:
            conditions.append(Lead.preferred_location == self.location)

        if self.assigned_to == UNASSIGNED:
            conditions.append(Lead.assigned_to.is_(None))
        elif self.assigned_to and self.assigned_to != ALL:
            conditions.append(Lead.assigned_to == self.assigned_to)

        if self.status and self.status != ALL:
            try:
                conditions.append(Lead.status == LeadStatus(self.status))
            except ValueError:
                raise InvalidLeadData(f"Invalid lead status: {self.status!r}")

        return conditions


def bucket_filter(
    bucket: Union[LeadBucket, str],
    base: Optional[LeadFilter] = None,
    user_id: Optional[str] = None,
) -> LeadFilter:
    """
    Narrow ``base`` (search/source/location) to one inbox bucket.

    Bucket predicates replace any status/assignment restriction in ``base``.
    """
    base = base or LeadFilter()
    try:
        bucket = LeadBucket(bucket)
    except ValueError:
        raise InvalidLeadData(f"Unknown bucket: {bucket!r}")

    if bucket == LeadBucket.UNASSIGNED:
        return replace(base, assigned_to=UNASSIGNED, status=LeadStatus.NEW)
    if bucket == LeadBucket.MY_LEADS:
        if not user_id:
            raise InvalidLeadData("The my_leads bucket needs a user id")
        return replace(base, assigned_to=user_id, status=None)
    if bucket == LeadBucket.CONSULTATION:
        return replace(base, assigned_to=None, status=LeadStatus.CONSULTATION_BOOKED)
    if bucket == LeadBucket.CONVERTED:
        return replace(base, assigned_to=None, status=LeadStatus.CONVERTED)
    return replace(base, assigned_to=None, status=None)
