"""
Verification Sub-flow

Secondary, non-blocking verification lane for vehicle requests:
none -> pending -> verified | declined.

Verification never changes a request's status or pending approvers. Whether
completion should wait for it is a policy decision made through the engine's
completion gate.
"""

from typing import Optional
from typing import Union
from uuid import UUID

from loguru import logger

from svcreq_api.workflow.audit import AuditEmitter
from svcreq_api.workflow.audit import emit_safely
from svcreq_api.workflow.db.store import EntityStore
from svcreq_api.workflow.enums import ApprovalDecision
from svcreq_api.workflow.enums import ApprovalStage
from svcreq_api.workflow.enums import AuditAction
from svcreq_api.workflow.enums import Capability
from svcreq_api.workflow.enums import VerificationStatus
from svcreq_api.workflow.exceptions import InvalidStateError
from svcreq_api.workflow.exceptions import NotAuthorizedError
from svcreq_api.workflow.exceptions import NotFoundError
from svcreq_api.workflow.exceptions import WorkflowValidationError
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import Approval
from svcreq_api.workflow.models import RequestSummary
from svcreq_api.workflow.models import VehicleRequest
from svcreq_api.workflow.models.request import utc_now
from svcreq_api.workflow.orchestrator.commit import commit_request
from svcreq_api.workflow.orchestrator.commit import request_event
from svcreq_api.workflow.orchestrator.resolver import PendingApproverResolver
from svcreq_api.workflow.orchestrator.resolver import resolve_capabilities

SUNDAY = 6  # date.weekday()
WEEK_SPAN = 6  # span_days of a seven-day trip, which always covers a Sunday

VERIFICATION_DECISIONS = {VerificationStatus.VERIFIED, VerificationStatus.DECLINED}


def travel_includes_sunday(request: AnyRequest) -> bool:
    """Default verification trigger: the vehicle trip covers a Sunday."""
    if not isinstance(request, VehicleRequest):
        return False
    if request.trip.span_days >= WEEK_SPAN:
        return True
    return any(day.weekday() == SUNDAY for day in request.trip.travel_days())


def never_verify(request: AnyRequest) -> bool:
    return False


def _verification_moved(before: AnyRequest, current: AnyRequest) -> bool:
    return (
        current.verification_status != before.verification_status
        or current.verifier_id != before.verifier_id
    )


class VerificationFlow:
    """Assigns verifiers and records their decisions."""

    def __init__(self, store: EntityStore, audit_emitter: AuditEmitter):
        self.store = store
        self.audit = audit_emitter
        self.resolver = PendingApproverResolver(store)

    async def _load_vehicle_request(self, request_id: UUID) -> VehicleRequest:
        request = await self.store.get_request(request_id)
        if not isinstance(request, VehicleRequest):
            raise WorkflowValidationError(
                f"Request {request.reference_code} is not a vehicle request; verification does not apply",
                details={"kind": request.kind.value},
            )
        return request

    async def assign_verifier(
        self,
        request_id: UUID,
        actor: ActorContext,
        verifier_id: int,
        comments: Optional[str] = None,
    ) -> RequestSummary:
        """
        Assign (or reassign) the verifier of a vehicle request.

        Only steward department approvers and super administrators may assign,
        and only while verification is none or pending.
        """
        request = await self._load_vehicle_request(request_id)

        capabilities = resolve_capabilities(request, actor, await self.resolver.is_steward(actor))
        if not capabilities & {Capability.STEWARD, Capability.ADMINISTRATOR}:
            raise NotAuthorizedError(
                "Only vehicle steward approvers or administrators can assign a verifier",
                details={"actor_id": actor.user_id},
            )

        if request.verification_status not in (VerificationStatus.NONE, VerificationStatus.PENDING):
            raise InvalidStateError(
                f"Verification is already {request.verification_status.value}",
                details={"verification_status": request.verification_status.value},
            )

        verifier = await self.store.get_user(verifier_id)
        if verifier is None:
            raise NotFoundError(f"Verifier {verifier_id} not found", details={"verifier_id": verifier_id})
        if not verifier.is_active:
            raise WorkflowValidationError(f"Verifier {verifier_id} is not active", details={"verifier_id": verifier_id})

        updated = request.model_copy(
            update={
                "verifier_id": verifier_id,
                "verification_status": VerificationStatus.PENDING,
                "verifier_comments": None,
                "verified_at": None,
            }
        )

        existing = await self.store.get_approval(request.request_id, ApprovalStage.VERIFICATION)
        if existing is not None:
            approval = existing.reopen(approver_id=verifier_id)
        else:
            approval = Approval(request_id=request.request_id, stage=ApprovalStage.VERIFICATION, approver_id=verifier_id)

        saved = await commit_request(self.store, request, updated, [approval], moved=_verification_moved)

        logger.info(
            f"Verifier assigned to {saved.reference_code}",
            request_id=str(saved.request_id),
            verifier_id=verifier_id,
            actor_id=actor.user_id,
        )
        await emit_safely(
            self.audit,
            request_event(
                actor,
                AuditAction.ASSIGN_VERIFIER,
                saved,
                verifier_id=verifier_id,
                previous_verifier_id=request.verifier_id,
                verification_status_before=request.verification_status.value,
                verification_status_after=saved.verification_status.value,
                comments=comments,
                notify_user_ids=[verifier_id],
            ),
        )
        return RequestSummary.from_request(saved)

    async def verify(
        self,
        request_id: UUID,
        actor: ActorContext,
        decision: Union[VerificationStatus, str],
        comments: Optional[str] = None,
    ) -> RequestSummary:
        """
        Record the assigned verifier's decision (verified or declined).

        Raises:
            WorkflowValidationError: decision is not verified/declined
            NotAuthorizedError: actor is not the assigned verifier
            InvalidStateError: verification is not pending
        """
        try:
            outcome = VerificationStatus(decision)
        except ValueError:
            outcome = None
        if outcome not in VERIFICATION_DECISIONS:
            raise WorkflowValidationError(
                "Verification decision must be 'verified' or 'declined'",
                details={"decision": str(getattr(decision, "value", decision))},
            )

        request = await self._load_vehicle_request(request_id)

        if request.verifier_id is None or actor.user_id != request.verifier_id:
            raise NotAuthorizedError(
                "Only the assigned verifier can verify this request",
                details={"verifier_id": request.verifier_id},
            )
        if request.verification_status != VerificationStatus.PENDING:
            raise InvalidStateError(
                f"Verification is {request.verification_status.value}, not pending",
                details={"verification_status": request.verification_status.value},
            )

        updated = request.model_copy(
            update={
                "verification_status": outcome,
                "verifier_comments": comments,
                "verified_at": utc_now(),
            }
        )

        approval_decision = ApprovalDecision.APPROVED if outcome == VerificationStatus.VERIFIED else ApprovalDecision.DECLINED
        existing = await self.store.get_approval(request.request_id, ApprovalStage.VERIFICATION)
        pending_row = existing or Approval(request_id=request.request_id, stage=ApprovalStage.VERIFICATION)
        approval = pending_row.decide(approval_decision, actor.user_id, comments)

        saved = await commit_request(self.store, request, updated, [approval], moved=_verification_moved)

        steward_ids = sorted({user.user_id for user in await self.store.list_steward_approvers()})
        logger.success(
            f"Verification {outcome.value} for {saved.reference_code}",
            request_id=str(saved.request_id),
            verifier_id=actor.user_id,
        )
        await emit_safely(
            self.audit,
            request_event(
                actor,
                AuditAction.VERIFY,
                saved,
                verification_status_before=request.verification_status.value,
                verification_status_after=outcome.value,
                comments=comments,
                notify_user_ids=steward_ids,
            ),
        )
        return RequestSummary.from_request(saved)


__all__ = [
    "VerificationFlow",
    "travel_includes_sunday",
    "never_verify",
]
