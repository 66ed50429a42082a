"""
Item Request Routes

IT equipment requests: role-scoped listing and stats, draft creation, draft
edits and service desk processing.
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
from svcreq_api.routes.routes_requests import WORKFLOW_ERROR_RESPONSES
from svcreq_api.schemas.schemas_workflow import ProcessRequestBody
from svcreq_api.schemas.schemas_workflow import RequestPageResponse
from svcreq_api.schemas.schemas_workflow import RequestStatsResponse
from svcreq_api.schemas.schemas_workflow import RequestSummaryResponse
from svcreq_api.workflow.enums import ItemRequestStatus
from svcreq_api.workflow.enums import Priority
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import SortField
from svcreq_api.workflow.enums import SortOrder
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import ItemRequestPayload
from svcreq_api.workflow.models import RequestFilters
from svcreq_api.workflow.orchestrator import WorkflowEngine

ROUTER_ITEM_REQUESTS = APIRouter(tags=["Item Requests"], prefix="/item-requests")


@ROUTER_ITEM_REQUESTS.get(
    "",
    response_model=RequestPageResponse,
    summary="List item requests visible to the current user",
)
async def list_item_requests(
    request_status: Optional[ItemRequestStatus] = Query(
        default=None, alias="status", description="Only requests in this status"
    ),
    priority: Optional[Priority] = Query(default=None, description="Only requests with this priority"),
    department_id: Optional[int] = Query(default=None, description="Only requests from this department"),
    requestor_id: Optional[int] = Query(default=None, description="Only requests by this requestor"),
    search: Optional[str] = Query(
        default=None, description="Case-insensitive match on reference code, equipment user or reason"
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
    List item requests.

    Requestors see their own requests. Department approvers see their department's
    submitted requests; IT managers, the service desk and super administrators see
    every submitted request. Drafts are only ever listed for their requestor.
    """
    filters = RequestFilters(
        status=request_status.value if request_status else None,
        priority=priority,
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
    result = await engine.list_requests(actor, RequestKind.ITEM, filters)
    return RequestPageResponse.from_page(result, viewer_id=actor.user_id)


@ROUTER_ITEM_REQUESTS.get(
    "/stats",
    response_model=RequestStatsResponse,
    summary="Item request counts per status",
)
async def item_request_stats(
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    stats = await engine.get_stats(actor, RequestKind.ITEM)
    return RequestStatsResponse.from_stats(stats)


@ROUTER_ITEM_REQUESTS.post(
    "",
    response_model=RequestSummaryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an item request draft",
    responses={400: {"description": "Actor has no department"}},
)
async def create_item_request(
    payload: ItemRequestPayload,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.create_item_request(actor, payload)
    return RequestSummaryResponse.from_summary(summary, message="Item request draft created")


@ROUTER_ITEM_REQUESTS.put(
    "/{request_id}",
    response_model=RequestSummaryResponse,
    summary="Edit an item request draft",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def update_item_request(
    request_id: UUID,
    payload: ItemRequestPayload,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.update_draft(request_id, actor, payload)
    return RequestSummaryResponse.from_summary(summary, message="Item request updated")


@ROUTER_ITEM_REQUESTS.post(
    "/{request_id}/process",
    response_model=RequestSummaryResponse,
    summary="Start service desk processing",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def process_item_request(
    request_id: UUID,
    body: ProcessRequestBody,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.start_processing(request_id, actor, comments=body.comments)
    return RequestSummaryResponse.from_summary(summary, message="Item request in processing")
