"""
Request Workflow Routes

Endpoints shared by item and vehicle requests: lookup, approver dashboard,
submit, approve, decline, return and delete.
"""

from uuid import UUID

from fastapi import APIRouter
from fastapi import Depends
from fastapi import status
from loguru import logger

from svcreq_api.dependencies import get_actor
from svcreq_api.dependencies import get_engine
from svcreq_api.schemas.schemas_workflow import ApprovalItem
from svcreq_api.schemas.schemas_workflow import ApprovalListResponse
from svcreq_api.schemas.schemas_workflow import ApproveRequestBody
from svcreq_api.schemas.schemas_workflow import DeclineRequestBody
from svcreq_api.schemas.schemas_workflow import DeleteRequestResponse
from svcreq_api.schemas.schemas_workflow import RequestDetailResponse
from svcreq_api.schemas.schemas_workflow import RequestListResponse
from svcreq_api.schemas.schemas_workflow import RequestSummaryResponse
from svcreq_api.schemas.schemas_workflow import ReturnRequestBody
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.orchestrator import WorkflowEngine

ROUTER_REQUESTS = APIRouter(tags=["Requests"], prefix="/requests")

WORKFLOW_ERROR_RESPONSES = {
    400: {"description": "Invalid input (blank reason, bad return target)"},
    403: {"description": "Actor lacks the required capability"},
    404: {"description": "Request not found"},
    409: {"description": "Request is not in a state that allows this action, or it changed concurrently"},
}

READ_ERROR_RESPONSES = {
    403: {"description": "Request is outside the caller's visibility (other users' drafts, other departments)"},
    404: {"description": "Request not found"},
}


# Static paths are registered before /{request_id}
@ROUTER_REQUESTS.get(
    "/pending",
    response_model=RequestListResponse,
    summary="List requests awaiting the current user",
)
async def list_pending(
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Approver dashboard: requests whose pending set contains the acting user."""
    summaries = await engine.list_pending_for(actor)
    logger.debug("Pending requests listed", actor_id=actor.user_id, count=len(summaries))
    return RequestListResponse(
        Message=f"{len(summaries)} request(s) awaiting action",
        Count=len(summaries),
        Requests=[RequestSummaryResponse.from_summary(s, message="Pending") for s in summaries],
    )


@ROUTER_REQUESTS.get(
    "/track/{reference_code}",
    response_model=RequestDetailResponse,
    summary="Track a request by reference code",
    responses={
        403: {"description": "Request is outside the caller's visibility"},
        404: {"description": "No request with this reference code"},
    },
)
async def track_request(
    reference_code: str,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    request = await engine.find_by_reference(reference_code, actor)
    return RequestDetailResponse.from_request(request, message=f"Request {request.reference_code}")


@ROUTER_REQUESTS.get(
    "/{request_id}",
    response_model=RequestDetailResponse,
    summary="Get a request",
    responses=READ_ERROR_RESPONSES,
)
async def get_request(
    request_id: UUID,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    request = await engine.get_request(request_id, actor)
    return RequestDetailResponse.from_request(request, message=f"Request {request.reference_code}")


@ROUTER_REQUESTS.get(
    "/{request_id}/approvals",
    response_model=ApprovalListResponse,
    summary="Get the approval history of a request",
    responses=READ_ERROR_RESPONSES,
)
async def list_approvals(
    request_id: UUID,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    approvals = await engine.list_approvals(request_id, actor)
    return ApprovalListResponse(
        Message=f"{len(approvals)} approval stage(s)",
        RequestId=str(request_id),
        Count=len(approvals),
        Approvals=[ApprovalItem.from_approval(a) for a in approvals],
    )


@ROUTER_REQUESTS.post(
    "/{request_id}/submit",
    response_model=RequestSummaryResponse,
    summary="Submit a draft or returned request for approval",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def submit_request(
    request_id: UUID,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.submit(request_id, actor)
    return RequestSummaryResponse.from_summary(summary, message="Request submitted")


@ROUTER_REQUESTS.post(
    "/{request_id}/approve",
    response_model=RequestSummaryResponse,
    summary="Approve the current stage",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def approve_request(
    request_id: UUID,
    body: ApproveRequestBody,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.approve(request_id, actor, comments=body.comments, signature=body.signature)
    return RequestSummaryResponse.from_summary(summary, message="Request approved")


@ROUTER_REQUESTS.post(
    "/{request_id}/decline",
    response_model=RequestSummaryResponse,
    summary="Decline the request",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def decline_request(
    request_id: UUID,
    body: DeclineRequestBody,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.decline(request_id, actor, reason=body.reason, signature=body.signature)
    return RequestSummaryResponse.from_summary(summary, message="Request declined")


@ROUTER_REQUESTS.post(
    "/{request_id}/return",
    response_model=RequestSummaryResponse,
    summary="Return the request for rework",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def return_request(
    request_id: UUID,
    body: ReturnRequestBody,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    summary = await engine.return_request(
        request_id,
        actor,
        reason=body.reason,
        return_to=body.return_to,
        signature=body.signature,
    )
    return RequestSummaryResponse.from_summary(summary, message=f"Request returned to {body.return_to.value}")


@ROUTER_REQUESTS.delete(
    "/{request_id}",
    response_model=DeleteRequestResponse,
    status_code=status.HTTP_200_OK,
    summary="Delete a request",
    responses=WORKFLOW_ERROR_RESPONSES,
)
async def delete_request(
    request_id: UUID,
    actor: ActorContext = Depends(get_actor),
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Delete a request.

    Requestors may delete their own drafts. Super administrators and vehicle steward
    approvers may also delete declined or completed requests; in-flight requests cannot be deleted.
    """
    await engine.delete(request_id, actor)
    return DeleteRequestResponse(Message="Request deleted", RequestId=str(request_id))
