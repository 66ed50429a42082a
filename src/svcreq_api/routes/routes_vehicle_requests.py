"""
Vehicle Request Routes

Service vehicle requests: role-scoped listing and stats, draft creation and
edits, completion with vehicle/driver assignment, and the verification lane.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter
from fastapi import Depends
from fastapi import Query
from fastapi import status

from svcreq_api.dependencies import get_actor
from svcreq_api.dependencies import get_engine
from svcreq_api.dependencies import get_verification_flow
from svcreq_api.routes.routes_requests import WORKFLOW_ERROR_RESPONSES
from svcreq_api.schemas.schemas_workflow import AssignVerifierBody
from svcreq_api.schemas.schemas_workflow import CompleteRequestBody
from svcreq_api.schemas.schemas_workflow import RequestPageResponse
from svcreq_api.schemas.schemas_workflow import RequestStatsResponse
from svcreq_api.schemas.schemas_workflow import RequestSummaryResponse
from svcreq_api.schemas.schemas_workflow import VerifyRequestBody
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import SortField
from svcreq_api.workflow.enums import SortOrder
from svcreq_api.workflow.enums import VehicleRequestStatus
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import RequestFilters
from svcreq_api.workflow.models import VehicleRequestPayload
from svcreq_api.workflow.orchestrator import VerificationFlow
from svcreq_api.workflow.orchestrator import WorkflowEngine

ROUTER_VEHICLE_REQUESTS = APIRouter(tags=["Vehicle Requests"], prefix="/vehicle-requests")


@ROUTER_VEHICLE_REQUESTS.get(
    "",
    response_model=RequestPageResponse,
    summary="List vehicle requests visible to the current user",
)
async def list_vehicle_requests(
    request_status: Optional[VehicleRequestStatus] = Query(
        default=None, alias="status", description="Only requests in this status"
    ),
    department_id: Optional[int] = Query(default=None, description="Only requests from this department"),
    requestor_id: Optional[int] = Query(default=None, description="Only requests by this requestor"),
    search: Optional[str] = Query(
        default=None, description="Case-insensitive match on reference code, trip purpose or destination"
    ),
    date_from: Optional[date] = Query(default=None, description="Submitted on or after this date"),
    date_to: Optional[date] = Query(default=None, description="Submitted on or before this date"),
    sort_by: SortField = Query(default=SortField.DATE, description="date, status or requestor"),
    sort_order: SortOrder = Query(default=SortOrder.DESC, description="asc or desc"),
    page: int = Query(default=1, ge=1, description="Page number (1-based)"),
    limit: int = Query(default=20, ge=1, le=100, description="Requests per page"),
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    List vehicle requests.

    Vehicle steward approvers see every submitted vehicle request; assigned
    verifiers also see the requests they verify.
    """
    filters = RequestFilters(
        status=request_status.value if request_status else None,
        department_id=department_id,
        requestor_id=requestor_id,
        search=search,
        submitted_from=date_from,
        submitted_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    result = await engine.list_requests(actor, RequestKind.VEHICLE, filters)
    return RequestPageResponse.from_page(result, viewer_id=actor.user_id)


@ROUTER_VEHICLE_REQUESTS.get(
    "/stats",
    response_model=RequestStatsResponse,
    summary="Vehicle request counts per status and verification status",
)
async def vehicle_request_stats(
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    stats = await engine.get_stats(actor, RequestKind.VEHICLE)
    return RequestStatsResponse.from_stats(stats)


@ROUTER_VEHICLE_REQUESTS.post(
    "",
    response_model=RequestSummaryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a vehicle request draft",
    responses={400: {"description": "Actor has no department"}},
)
async def create_vehicle_request(
    payload: VehicleRequestPayload,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.create_vehicle_request(actor, payload)
    return RequestSummaryResponse.from_summary(summary, message="Vehicle request draft created")


@ROUTER_VEHICLE_REQUESTS.put(
    "/{request_id}",
    response_model=RequestSummaryResponse,
    summary="Edit a vehicle request draft",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def update_vehicle_request(
    request_id: UUID,
    payload: VehicleRequestPayload,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.update_draft(request_id, actor, payload)
    return RequestSummaryResponse.from_summary(summary, message="Vehicle request updated")


@ROUTER_VEHICLE_REQUESTS.post(
    "/{request_id}/complete",
    response_model=RequestSummaryResponse,
    summary="Final approval with vehicle and driver assignment",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def complete_vehicle_request(
    request_id: UUID,
    body: CompleteRequestBody,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.complete(
        request_id,
        actor,
        assigned_vehicle_id=body.assigned_vehicle_id,
        assigned_driver_id=body.assigned_driver_id,
        comments=body.comments,
    )
    return RequestSummaryResponse.from_summary(summary, message="Vehicle request completed")


@ROUTER_VEHICLE_REQUESTS.post(
    "/{request_id}/verifier",
    response_model=RequestSummaryResponse,
    summary="Assign the verifier",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def assign_verifier(
    request_id: UUID,
    body: AssignVerifierBody,
    actor: ActorContext = Depends(get_actor),
    flow: VerificationFlow = Depends(get_verification_flow),
):
    summary = await flow.assign_verifier(request_id, actor, body.verifier_id, comments=body.comments)
    return RequestSummaryResponse.from_summary(summary, message="Verifier assigned")


@ROUTER_VEHICLE_REQUESTS.post(
    "/{request_id}/verify",
    response_model=RequestSummaryResponse,
    summary="Record the verifier's decision",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def verify_vehicle_request(
    request_id: UUID,
    body: VerifyRequestBody,
    actor: ActorContext = Depends(get_actor),
    flow: VerificationFlow = Depends(get_verification_flow),
):
    summary = await flow.verify(request_id, actor, body.decision, comments=body.comments)
    return RequestSummaryResponse.from_summary(summary, message=f"Verification {summary.verification_status.value}")
