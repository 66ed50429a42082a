"""
Request Models

Database models for item (IT equipment) and service vehicle requests.
Both kinds share one lifecycle shape; payload and approval-chain length differ.
"""

from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from decimal import Decimal
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Union
from uuid import UUID
from uuid import uuid4

from pydantic import BaseModel
from pydantic import Field
from pydantic import field_validator
from pydantic import model_validator

from svcreq_api.workflow.enums import EntityType
from svcreq_api.workflow.enums import ItemRequestStatus
from svcreq_api.workflow.enums import Priority
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import ReturnTarget
from svcreq_api.workflow.enums import VehicleRequestStatus
from svcreq_api.workflow.enums import VehicleRequestType
from svcreq_api.workflow.enums import VerificationStatus


def utc_now() -> datetime:
    """Timezone-aware current time used for every workflow timestamp."""
    return datetime.now(timezone.utc)


# ════════════════════════════════════════════════════════════════════════════
# Payload Models
# ════════════════════════════════════════════════════════════════════════════


class RequestItem(BaseModel):
    """One equipment line item on an item request."""

    category: str
    item_description: str
    quantity: int = Field(default=1, ge=1)
    estimated_cost: Optional[Decimal] = None
    specifications: Optional[str] = None


class TripDetails(BaseModel):
    """Trip metadata for a service vehicle request."""

    request_type: VehicleRequestType = VehicleRequestType.POINT_TO_POINT_SERVICE
    travel_date_from: date
    travel_date_to: date
    pick_up_time: Optional[str] = None  # e.g. "08:30" or "8:30 AM"
    drop_off_time: Optional[str] = None
    pick_up_location: Optional[str] = None
    drop_off_location: Optional[str] = None
    destination: Optional[str] = None
    purpose: Optional[str] = None
    passengers: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_travel_window(self) -> "TripDetails":
        """Travel window must not end before it starts."""
        if self.travel_date_to < self.travel_date_from:
            raise ValueError("travel_date_to must be on or after travel_date_from")
        return self

    @property
    def span_days(self) -> int:
        return (self.travel_date_to - self.travel_date_from).days

    def travel_days(self) -> List[date]:
        """Every calendar day covered by the trip, inclusive."""
        return [self.travel_date_from + timedelta(days=offset) for offset in range(self.span_days + 1)]


# ════════════════════════════════════════════════════════════════════════════
# Request Models
# ════════════════════════════════════════════════════════════════════════════


class WorkflowRequest(BaseModel):
    """Fields shared by every request kind."""

    request_id: UUID = Field(default_factory=uuid4)
    reference_code: str
    kind: RequestKind
    requestor_id: int
    department_id: int
    status: Union[ItemRequestStatus, VehicleRequestStatus]
    pending_approver_ids: List[int] = Field(default_factory=list)
    returned_to: Optional[ReturnTarget] = None
    comments: Optional[str] = None
    requestor_signature: Optional[str] = None  # Base64 image or file path

    # Optimistic concurrency token, bumped on every committed write
    version: int = 1

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("pending_approver_ids")
    @classmethod
    def normalize_pending(cls, v: List[int]) -> List[int]:
        """Pending approvers are a set; keep them sorted for stable comparisons."""
        return sorted(set(v))

    @property
    def entity_type(self) -> str:
        entity = EntityType.ITEM_REQUEST if self.kind == RequestKind.ITEM else EntityType.VEHICLE_REQUEST
        return entity.value


class ItemRequest(WorkflowRequest):
    """IT equipment request."""

    kind: RequestKind = RequestKind.ITEM
    status: ItemRequestStatus = ItemRequestStatus.DRAFT
    items: List[RequestItem] = Field(default_factory=list)
    reason: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    date_required: Optional[date] = None
    user_name: Optional[str] = None  # Actual user of the equipment
    user_position: Optional[str] = None

    @property
    def total_estimated_cost(self) -> Decimal:
        return sum(
            ((item.estimated_cost or Decimal("0")) * item.quantity for item in self.items),
            Decimal("0"),
        )


class VehicleRequest(WorkflowRequest):
    """Service vehicle request."""

    kind: RequestKind = RequestKind.VEHICLE
    status: VehicleRequestStatus = VehicleRequestStatus.DRAFT
    trip: TripDetails

    # Verification lane (independent of status)
    verification_status: VerificationStatus = VerificationStatus.NONE
    verifier_id: Optional[int] = None
    verifier_comments: Optional[str] = None
    verified_at: Optional[datetime] = None

    # Set only by the completing approver
    assigned_vehicle_id: Optional[int] = None
    assigned_driver_id: Optional[int] = None


AnyRequest = Union[ItemRequest, VehicleRequest]


def request_from_record(record: Dict[str, Any]) -> AnyRequest:
    """Build the concrete request model for a stored record."""
    kind = RequestKind(record["kind"])
    if kind == RequestKind.ITEM:
        return ItemRequest.model_validate(record)
    return VehicleRequest.model_validate(record)


# ════════════════════════════════════════════════════════════════════════════
# Draft Payloads
# ════════════════════════════════════════════════════════════════════════════


class ItemRequestPayload(BaseModel):
    """Editable fields of an item request draft."""

    items: List[RequestItem] = Field(default_factory=list)
    reason: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    date_required: Optional[date] = None
    user_name: Optional[str] = None
    user_position: Optional[str] = None
    comments: Optional[str] = None
    requestor_signature: Optional[str] = None


class VehicleRequestPayload(BaseModel):
    """Editable fields of a vehicle request draft."""

    trip: TripDetails
    comments: Optional[str] = None
    requestor_signature: Optional[str] = None


# ════════════════════════════════════════════════════════════════════════════
# Summary
# ════════════════════════════════════════════════════════════════════════════


class RequestSummary(BaseModel):
    """State of a request after a workflow operation."""

    request_id: UUID
    reference_code: str
    kind: RequestKind
    status: str
    pending_approver_ids: List[int]
    returned_to: Optional[ReturnTarget] = None
    verification_status: Optional[VerificationStatus] = None
    verifier_id: Optional[int] = None
    assigned_vehicle_id: Optional[int] = None
    assigned_driver_id: Optional[int] = None
    version: int

    @classmethod
    def from_request(cls, request: AnyRequest) -> "RequestSummary":
        summary = cls(
            request_id=request.request_id,
            reference_code=request.reference_code,
            kind=request.kind,
            status=request.status.value,
            pending_approver_ids=list(request.pending_approver_ids),
            returned_to=request.returned_to,
            version=request.version,
        )
        if isinstance(request, VehicleRequest):
            summary.verification_status = request.verification_status
            summary.verifier_id = request.verifier_id
            summary.assigned_vehicle_id = request.assigned_vehicle_id
            summary.assigned_driver_id = request.assigned_driver_id
        return summary
