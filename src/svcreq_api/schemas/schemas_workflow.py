"""
Workflow API Schemas

Request bodies (snake_case) and response models (PascalCase fields per existing pattern)
for the service request workflow endpoints.
"""

from datetime import datetime
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import Field

from svcreq_api.workflow.enums import ReturnTarget
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import Approval
from svcreq_api.workflow.models import ItemRequest
from svcreq_api.workflow.models import RequestPage
from svcreq_api.workflow.models import RequestStats
from svcreq_api.workflow.models import RequestSummary
from svcreq_api.workflow.models import VehicleRequest

# ════════════════════════════════════════════════════════════════════════════
# Request Bodies
# ════════════════════════════════════════════════════════════════════════════


class ApproveRequestBody(BaseModel):
    """Approve the current stage."""

    comments: Optional[str] = Field(None, description="Approver comments")
    signature: Optional[str] = Field(None, description="Approver signature (base64 image)")


class DeclineRequestBody(BaseModel):
    """Decline the request."""

    reason: Optional[str] = Field(None, description="Reason for declining (required, must not be blank)")
    signature: Optional[str] = Field(None, description="Approver signature (base64 image)")


class ReturnRequestBody(BaseModel):
    """Return the request for rework."""

    reason: Optional[str] = Field(None, description="Reason for returning (required, must not be blank)")
    return_to: ReturnTarget = Field(
        ReturnTarget.REQUESTOR,
        description="requestor, or department_approver (item requests at the IT manager stage only)",
    )
    signature: Optional[str] = Field(None, description="Approver signature (base64 image)")


class ProcessRequestBody(BaseModel):
    """Service desk starts processing an item request."""

    comments: Optional[str] = Field(None, description="Service desk notes")


class CompleteRequestBody(BaseModel):
    """Complete a vehicle request with assigned resources."""

    assigned_vehicle_id: Optional[int] = Field(None, description="Fleet vehicle assigned to the trip")
    assigned_driver_id: Optional[int] = Field(None, description="Driver assigned to the trip")
    comments: Optional[str] = Field(None, description="Completion comments")


class AssignVerifierBody(BaseModel):
    """Assign the verifier of a vehicle request."""

    verifier_id: int = Field(..., description="User id of the verifier")
    comments: Optional[str] = Field(None, description="Note for the verifier")


class VerifyRequestBody(BaseModel):
    """Verifier decision."""

    decision: str = Field(..., description="verified or declined")
    comments: Optional[str] = Field(None, description="Verifier comments")


# ════════════════════════════════════════════════════════════════════════════
# Responses
# ════════════════════════════════════════════════════════════════════════════


class RequestSummaryResponse(BaseModel):
    """Request state after a workflow operation."""

    Message: str
    RequestId: str
    ReferenceCode: str
    Kind: str
    Status: str
    PendingApproverIds: List[int]
    ReturnedTo: Optional[str] = None
    VerificationStatus: Optional[str] = None
    VerifierId: Optional[int] = None
    AssignedVehicleId: Optional[int] = None
    AssignedDriverId: Optional[int] = None
    Version: int

    @classmethod
    def from_summary(cls, summary: RequestSummary, message: str) -> "RequestSummaryResponse":
        return cls(
            Message=message,
            RequestId=str(summary.request_id),
            ReferenceCode=summary.reference_code,
            Kind=summary.kind.value,
            Status=summary.status,
            PendingApproverIds=summary.pending_approver_ids,
            ReturnedTo=summary.returned_to.value if summary.returned_to else None,
            VerificationStatus=summary.verification_status.value if summary.verification_status else None,
            VerifierId=summary.verifier_id,
            AssignedVehicleId=summary.assigned_vehicle_id,
            AssignedDriverId=summary.assigned_driver_id,
            Version=summary.version,
        )


class RequestDetailResponse(BaseModel):
    """Full request record."""

    Message: str
    Request: Dict[str, Any]

    @classmethod
    def from_request(cls, request: AnyRequest, message: str) -> "RequestDetailResponse":
        return cls(Message=message, Request=request.model_dump(mode="json"))


class RequestListResponse(BaseModel):
    """List of requests."""

    Message: str
    Count: int
    Requests: List[RequestSummaryResponse]


class ApprovalItem(BaseModel):
    """Single approval stage decision."""

    ApprovalId: str
    Stage: str
    ApproverId: Optional[int]
    Decision: str
    Comments: Optional[str]
    DecidedAt: Optional[datetime]
    CreatedAt: datetime

    @classmethod
    def from_approval(cls, approval: Approval) -> "ApprovalItem":
        return cls(
            ApprovalId=str(approval.approval_id),
            Stage=approval.stage.value,
            ApproverId=approval.approver_id,
            Decision=approval.decision.value,
            Comments=approval.comments,
            DecidedAt=approval.decided_at,
            CreatedAt=approval.created_at,
        )


class ApprovalListResponse(BaseModel):
    """Approval history of a request."""

    Message: str
    RequestId: str
    Count: int
    Approvals: List[ApprovalItem]


class DeleteRequestResponse(BaseModel):
    """Response after deleting a request."""

    Message: str
    RequestId: str


class RequestListItem(BaseModel):
    """One row of a request listing."""

    RequestId: str
    ReferenceCode: str
    Kind: str
    Status: str
    RequestorId: int
    DepartmentId: int
    Priority: Optional[str] = None
    TotalEstimatedCost: Optional[float] = None
    ItemsCount: Optional[int] = None
    TravelDateFrom: Optional[str] = None
    TravelDateTo: Optional[str] = None
    VerificationStatus: Optional[str] = None
    IsPendingMyApproval: bool
    SubmittedAt: Optional[datetime] = None
    CompletedAt: Optional[datetime] = None
    CreatedAt: datetime

    @classmethod
    def from_request(cls, request: AnyRequest, viewer_id: int) -> "RequestListItem":
        item = cls(
            RequestId=str(request.request_id),
            ReferenceCode=request.reference_code,
            Kind=request.kind.value,
            Status=request.status.value,
            RequestorId=request.requestor_id,
            DepartmentId=request.department_id,
            IsPendingMyApproval=viewer_id in request.pending_approver_ids and viewer_id != request.requestor_id,
            SubmittedAt=request.submitted_at,
            CompletedAt=request.completed_at,
            CreatedAt=request.created_at,
        )
        if isinstance(request, ItemRequest):
            item.Priority = request.priority.value
            item.TotalEstimatedCost = float(request.total_estimated_cost)
            item.ItemsCount = len(request.items)
        elif isinstance(request, VehicleRequest):
            item.TravelDateFrom = request.trip.travel_date_from.isoformat()
            item.TravelDateTo = request.trip.travel_date_to.isoformat()
            item.VerificationStatus = request.verification_status.value
        return item


class PaginationInfo(BaseModel):
    Page: int
    Limit: int
    Total: int
    Pages: int


class RequestPageResponse(BaseModel):
    """Paged, role-scoped request listing."""

    Message: str
    Requests: List[RequestListItem]
    Pagination: PaginationInfo

    @classmethod
    def from_page(cls, page: RequestPage, viewer_id: int) -> "RequestPageResponse":
        return cls(
            Message=f"{page.total} request(s) found",
            Requests=[RequestListItem.from_request(r, viewer_id) for r in page.requests],
            Pagination=PaginationInfo(Page=page.page, Limit=page.limit, Total=page.total, Pages=page.pages),
        )


class RequestStatsResponse(BaseModel):
    """Per-status request counts."""

    Kind: str
    Stats: Dict[str, int]
    Total: int
    Verification: Optional[Dict[str, int]] = None

    @classmethod
    def from_stats(cls, stats: RequestStats) -> "RequestStatsResponse":
        return cls(
            Kind=stats.kind.value,
            Stats=stats.status_counts,
            Total=stats.total,
            Verification=stats.verification_counts or None,
        )
