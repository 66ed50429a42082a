"""
Query Models

Visibility scope, filters and result pages for request listings and stats.
"""

import math
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from pydantic import BaseModel
from pydantic import Field

from svcreq_api.workflow.enums import ItemRequestStatus
from svcreq_api.workflow.enums import Priority
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import SortField
from svcreq_api.workflow.enums import SortOrder
from svcreq_api.workflow.models.request import AnyRequest
from svcreq_api.workflow.models.request import ItemRequest
from svcreq_api.workflow.models.request import VehicleRequest


class RequestScope(BaseModel):
    """
    Requests one actor may read.

    A request is visible to its requestor and its assigned verifier. Drafts are
    visible to nobody else. Beyond that, all_departments opens every request,
    department_id opens one department's requests and steward opens every
    vehicle request.
    """

    viewer_id: int
    all_departments: bool = False
    department_id: Optional[int] = None
    steward: bool = False

    def covers(self, request: AnyRequest) -> bool:
        if request.requestor_id == self.viewer_id:
            return True
        if isinstance(request, VehicleRequest) and request.verifier_id == self.viewer_id:
            return True
        if request.status == ItemRequestStatus.DRAFT:
            return False
        if self.all_departments:
            return True
        if self.department_id is not None and request.department_id == self.department_id:
            return True
        return self.steward and request.kind == RequestKind.VEHICLE


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class RequestFilters(BaseModel):
    """Listing filters, ordering and paging."""

    status: Optional[str] = None
    priority: Optional[Priority] = None  # item requests only
    department_id: Optional[int] = None
    requestor_id: Optional[int] = None
    search: Optional[str] = None
    submitted_from: Optional[date] = None
    submitted_to: Optional[date] = None  # inclusive
    sort_by: SortField = SortField.DATE
    sort_order: SortOrder = SortOrder.DESC
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def search_term(self) -> Optional[str]:
        term = (self.search or "").strip()
        return term or None

    def submitted_window(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """[start, end) bounds on submitted_at in UTC."""
        start = _day_start(self.submitted_from) if self.submitted_from else None
        end = _day_start(self.submitted_to + timedelta(days=1)) if self.submitted_to else None
        return start, end

    def matches(self, request: AnyRequest) -> bool:
        if self.status is not None and request.status.value != self.status:
            return False
        if self.priority is not None and getattr(request, "priority", None) != self.priority:
            return False
        if self.department_id is not None and request.department_id != self.department_id:
            return False
        if self.requestor_id is not None and request.requestor_id != self.requestor_id:
            return False

        start, end = self.submitted_window()
        if start is not None or end is not None:
            if request.submitted_at is None:
                return False
            if start is not None and request.submitted_at < start:
                return False
            if end is not None and request.submitted_at >= end:
                return False

        term = self.search_term
        if term is not None:
            needle = term.lower()
            return any(needle in text.lower() for text in searchable_text(request))
        return True


def searchable_text(request: AnyRequest) -> List[str]:
    """Fields free-text search looks at."""
    if isinstance(request, ItemRequest):
        fields = [request.reference_code, request.user_name, request.reason]
    else:
        fields = [request.reference_code, request.trip.purpose, request.trip.destination]
    return [field for field in fields if field]


class RequestPage(BaseModel):
    """One page of a request listing."""

    requests: List[AnyRequest]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit)


class RequestStats(BaseModel):
    """Per-status counts of the requests an actor can see."""

    kind: RequestKind
    status_counts: Dict[str, int]
    total: int
    verification_counts: Dict[str, int] = Field(default_factory=dict)
