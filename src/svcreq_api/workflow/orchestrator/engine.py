"""
Workflow Engine

State machine for item and vehicle requests.

Every operation follows the same shape:
1. Validate the payload
2. Load the request and check the actor against it
3. Look up the transition in the transition table
4. Commit request + approval rows atomically (compare-and-swap on version)
5. Emit the audit event after the commit

Guards run before any write, so a rejected action leaves stored state untouched.
"""

from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Set
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
from svcreq_api.workflow.enums import ItemRequestStatus
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import ReturnTarget
from svcreq_api.workflow.enums import UserRole
from svcreq_api.workflow.enums import VehicleRequestStatus
from svcreq_api.workflow.enums import VerificationStatus
from svcreq_api.workflow.enums import WorkflowAction
from svcreq_api.workflow.exceptions import InvalidStateError
from svcreq_api.workflow.exceptions import NotAuthorizedError
from svcreq_api.workflow.exceptions import NotFoundError
from svcreq_api.workflow.exceptions import NotOwnerError
from svcreq_api.workflow.exceptions import VersionConflictError
from svcreq_api.workflow.exceptions import WorkflowValidationError
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import Approval
from svcreq_api.workflow.models import ItemRequest
from svcreq_api.workflow.models import ItemRequestPayload
from svcreq_api.workflow.models import RequestFilters
from svcreq_api.workflow.models import RequestPage
from svcreq_api.workflow.models import RequestStats
from svcreq_api.workflow.models import RequestSummary
from svcreq_api.workflow.models import VehicleRequest
from svcreq_api.workflow.models import VehicleRequestPayload
from svcreq_api.workflow.models.request import utc_now
from svcreq_api.workflow.orchestrator import transitions
from svcreq_api.workflow.orchestrator.commit import commit_request
from svcreq_api.workflow.orchestrator.commit import raise_if_moved
from svcreq_api.workflow.orchestrator.commit import request_event
from svcreq_api.workflow.orchestrator.reference import generate_reference_code
from svcreq_api.workflow.orchestrator.resolver import PendingApproverResolver
from svcreq_api.workflow.orchestrator.resolver import can_view
from svcreq_api.workflow.orchestrator.resolver import resolve_capabilities
from svcreq_api.workflow.orchestrator.resolver import request_scope
from svcreq_api.workflow.orchestrator.verification import travel_includes_sunday

RequestPredicate = Callable[[AnyRequest], bool]

REFERENCE_ATTEMPTS = 10

APPROVER_ACTION_AUDIT = {
    WorkflowAction.APPROVE: AuditAction.APPROVE,
    WorkflowAction.COMPLETE: AuditAction.APPROVE,
    WorkflowAction.DECLINE: AuditAction.DECLINE,
    WorkflowAction.RETURN: AuditAction.RETURN,
    WorkflowAction.PROCESS: AuditAction.PROCESS,
}

APPROVER_ACTION_DECISION = {
    WorkflowAction.APPROVE: ApprovalDecision.APPROVED,
    WorkflowAction.COMPLETE: ApprovalDecision.APPROVED,
    WorkflowAction.DECLINE: ApprovalDecision.DECLINED,
    WorkflowAction.RETURN: ApprovalDecision.RETURNED,
}


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise WorkflowValidationError(f"{field} is required", details={"field": field})
    return value.strip()


def _return_target(value: Union[ReturnTarget, str, None]) -> ReturnTarget:
    if value is None:
        return ReturnTarget.REQUESTOR
    try:
        return ReturnTarget(value)
    except ValueError:
        raise WorkflowValidationError(
            f"Unknown return target: {value}",
            details={"return_to": str(value)},
        ) from None


def calculate_changes(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Field-level {field: {"from": old, "to": new}} diff of two JSON-mode dumps."""
    return {
        key: {"from": before.get(key), "to": value}
        for key, value in after.items()
        if before.get(key) != value
    }


class WorkflowEngine:
    """
    Applies workflow actions to requests.

    Args:
        store: EntityStore holding requests, approvals and directory data
        audit_emitter: Sink for AuditEvents (emitted after commit)
        verification_trigger: Predicate deciding whether a submitted vehicle
            request enters the verification lane
        completion_gate: Optional predicate consulted before any transition to
            completed; returning False blocks completion
        item_reference_prefix: Reference code prefix for item requests
        vehicle_reference_prefix: Reference code prefix for vehicle requests
    """

    def __init__(
        self,
        store: EntityStore,
        audit_emitter: AuditEmitter,
        verification_trigger: Optional[RequestPredicate] = travel_includes_sunday,
        completion_gate: Optional[RequestPredicate] = None,
        item_reference_prefix: str = "REQ",
        vehicle_reference_prefix: str = "SVR",
    ):
        self.store = store
        self.audit = audit_emitter
        self.resolver = PendingApproverResolver(store)
        self.verification_trigger = verification_trigger
        self.completion_gate = completion_gate
        self.reference_prefixes = {
            RequestKind.ITEM: item_reference_prefix,
            RequestKind.VEHICLE: vehicle_reference_prefix,
        }

    # ════════════════════════════════════════════════════════════════════════
    # Queries
    # ════════════════════════════════════════════════════════════════════════

    async def get_request(self, request_id: UUID, actor: ActorContext) -> AnyRequest:
        """
        Load a request the actor may read.

        Raises:
            NotFoundError: Unknown request
            NotAuthorizedError: Request is outside the actor's scope
        """
        request = await self.store.get_request(request_id)
        await self._ensure_visible(request, actor)
        return request

    async def find_by_reference(self, reference_code: str, actor: ActorContext) -> AnyRequest:
        request = await self.store.find_by_reference(reference_code)
        await self._ensure_visible(request, actor)
        return request

    async def list_approvals(self, request_id: UUID, actor: ActorContext) -> List[Approval]:
        await self.get_request(request_id, actor)
        return await self.store.list_approvals(request_id)

    async def list_pending_for(self, actor: ActorContext) -> List[RequestSummary]:
        """Requests awaiting this actor (the authoritative pending set only)."""
        requests = await self.store.list_pending_for(actor.user_id)
        return [RequestSummary.from_request(r) for r in requests]

    async def list_requests(
        self,
        actor: ActorContext,
        kind: RequestKind,
        filters: Optional[RequestFilters] = None,
    ) -> RequestPage:
        """One page of the requests of a kind the actor may read."""
        filters = filters or RequestFilters()
        scope = request_scope(actor, await self.resolver.is_steward(actor))
        requests, total = await self.store.list_requests(kind, scope, filters)

        logger.debug(
            f"Listed {kind.value} requests",
            actor_id=actor.user_id,
            total=total,
            page=filters.page,
        )
        return RequestPage(requests=requests, total=total, page=filters.page, limit=filters.limit)

    async def get_stats(self, actor: ActorContext, kind: RequestKind) -> RequestStats:
        """
        Per-status counts of the requests of a kind the actor may read.

        The total leaves drafts out except for requestors, whose dashboard
        counts their own drafts.
        """
        scope = request_scope(actor, await self.resolver.is_steward(actor))
        statuses = ItemRequestStatus if kind == RequestKind.ITEM else VehicleRequestStatus

        status_counts = {status.value: 0 for status in statuses}
        status_counts.update(await self.store.count_requests(kind, scope, "status"))

        counted = dict(status_counts)
        if actor.role != UserRole.REQUESTOR:
            counted.pop(ItemRequestStatus.DRAFT.value)

        verification_counts: Dict[str, int] = {}
        if kind == RequestKind.VEHICLE:
            verification_counts = {
                status.value: 0 for status in VerificationStatus if status != VerificationStatus.NONE
            }
            grouped = await self.store.count_requests(kind, scope, "verification_status")
            verification_counts.update({key: value for key, value in grouped.items() if key in verification_counts})

        return RequestStats(
            kind=kind,
            status_counts=status_counts,
            total=sum(counted.values()),
            verification_counts=verification_counts,
        )

    async def _ensure_visible(self, request: AnyRequest, actor: ActorContext) -> None:
        if can_view(request, actor, await self.resolver.is_steward(actor)):
            return
        message = (
            "Draft requests can only be viewed by the requestor"
            if request.status == ItemRequestStatus.DRAFT
            else "You do not have permission to view this request"
        )
        raise NotAuthorizedError(message, details={"reference_code": request.reference_code})

    # ════════════════════════════════════════════════════════════════════════
    # Drafts
    # ════════════════════════════════════════════════════════════════════════

    async def create_item_request(self, actor: ActorContext, payload: ItemRequestPayload) -> RequestSummary:
        """Create an item request draft owned by the actor."""
        owner = self._owner_fields(actor)
        fields = payload.model_dump()
        return await self._create(
            actor, RequestKind.ITEM, lambda code: ItemRequest(reference_code=code, **owner, **fields)
        )

    async def create_vehicle_request(self, actor: ActorContext, payload: VehicleRequestPayload) -> RequestSummary:
        """Create a vehicle request draft owned by the actor."""
        owner = self._owner_fields(actor)
        fields = payload.model_dump()
        return await self._create(
            actor, RequestKind.VEHICLE, lambda code: VehicleRequest(reference_code=code, **owner, **fields)
        )

    def _owner_fields(self, actor: ActorContext) -> Dict[str, Any]:
        if actor.department_id is None:
            raise WorkflowValidationError(
                "Requestor must belong to a department to create a request",
                details={"actor_id": actor.user_id},
            )
        return {"requestor_id": actor.user_id, "department_id": actor.department_id}

    async def _create(
        self,
        actor: ActorContext,
        kind: RequestKind,
        build: Callable[[str], AnyRequest],
    ) -> RequestSummary:
        department = await self.store.get_department(actor.department_id)
        if department is None or not department.is_active:
            raise WorkflowValidationError(
                f"Department {actor.department_id} does not exist or is inactive",
                details={"department_id": actor.department_id},
            )

        prefix = self.reference_prefixes[kind]

        for attempt in range(REFERENCE_ATTEMPTS):
            request = build(generate_reference_code(prefix, offset=attempt))
            try:
                async with self.store.transaction() as tx:
                    saved = await tx.insert_request(request)
                break
            except VersionConflictError:
                logger.warning("Reference code collision, retrying", reference_code=request.reference_code)
        else:
            raise VersionConflictError("Could not allocate a unique reference code")

        logger.info(
            f"Created {saved.kind.value} request {saved.reference_code}",
            request_id=str(saved.request_id),
            requestor_id=actor.user_id,
        )
        await emit_safely(
            self.audit,
            request_event(actor, AuditAction.CREATE, saved, status_after=saved.status.value),
        )
        return RequestSummary.from_request(saved)

    async def update_draft(
        self,
        request_id: UUID,
        actor: ActorContext,
        payload: Union[ItemRequestPayload, VehicleRequestPayload],
    ) -> RequestSummary:
        """
        Edit a draft (or a request returned to its requestor).

        Only fields explicitly set on the payload are applied.
        """
        request = await self.store.get_request(request_id)

        if actor.user_id != request.requestor_id:
            raise NotOwnerError("Only the requestor can edit this request", details={"requestor_id": request.requestor_id})

        editable = request.status == ItemRequestStatus.DRAFT or (
            request.status == ItemRequestStatus.RETURNED and request.returned_to == ReturnTarget.REQUESTOR
        )
        if not editable:
            raise InvalidStateError(
                f"Request {request.reference_code} cannot be edited while {request.status.value}",
                details={"status": request.status.value},
            )

        expected_payload = ItemRequestPayload if request.kind == RequestKind.ITEM else VehicleRequestPayload
        if not isinstance(payload, expected_payload):
            raise WorkflowValidationError(
                f"Payload does not match a {request.kind.value} request",
                details={"kind": request.kind.value},
            )

        changes = payload.model_dump(exclude_unset=True)
        before = request.model_dump(mode="json", include=set(changes))
        updated = type(request).model_validate({**request.model_dump(), **changes})
        diff = calculate_changes(before, updated.model_dump(mode="json", include=set(changes)))

        if not diff:
            return RequestSummary.from_request(request)

        saved = await commit_request(self.store, request, updated)

        logger.info(
            f"Updated draft {saved.reference_code}",
            request_id=str(saved.request_id),
            fields=sorted(diff),
        )
        await emit_safely(
            self.audit,
            request_event(actor, AuditAction.UPDATE, saved, status_after=saved.status.value, changes=diff),
        )
        return RequestSummary.from_request(saved)

    # ════════════════════════════════════════════════════════════════════════
    # Requestor Actions
    # ════════════════════════════════════════════════════════════════════════

    async def submit(self, request_id: UUID, actor: ActorContext) -> RequestSummary:
        """
        Submit a draft, or resubmit a request returned to its requestor.

        Raises:
            NotOwnerError: Actor is not the requestor
            InvalidStateError: Request is not draft / returned to requestor
        """
        request = await self.store.get_request(request_id)

        if actor.user_id != request.requestor_id:
            raise NotOwnerError(
                "Only the requestor can submit this request",
                details={"requestor_id": request.requestor_id},
            )
        if request.status == ItemRequestStatus.RETURNED and request.returned_to != ReturnTarget.REQUESTOR:
            raise InvalidStateError(
                f"Request {request.reference_code} was returned to the department approver and cannot be resubmitted",
                details={"status": request.status.value, "returned_to": getattr(request.returned_to, "value", None)},
            )

        _, target = self._transition(request, WorkflowAction.SUBMIT, {Capability.OWNER})

        now = utc_now()
        update: Dict[str, Any] = {"status": target, "returned_to": None, "submitted_at": now}
        updated = request.model_copy(update=update)

        verification_triggered = False
        if (
            isinstance(updated, VehicleRequest)
            and updated.verification_status == VerificationStatus.NONE
            and self.verification_trigger is not None
            and self.verification_trigger(updated)
        ):
            updated = updated.model_copy(update={"verification_status": VerificationStatus.PENDING})
            verification_triggered = True

        updated.pending_approver_ids = await self.resolver.resolve(updated)
        self._require_approvers(updated)
        approvals = await self._open_stage(updated, exclude=None)

        saved = await commit_request(self.store, request, updated, approvals)

        logger.info(
            f"Request {saved.reference_code} submitted",
            request_id=str(saved.request_id),
            status_before=request.status.value,
            pending_approver_ids=saved.pending_approver_ids,
        )
        await emit_safely(
            self.audit,
            request_event(
                actor,
                AuditAction.SUBMIT,
                saved,
                status_before=request.status.value,
                status_after=saved.status.value,
                pending_approver_ids=saved.pending_approver_ids,
                verification_triggered=verification_triggered,
                notify_user_ids=saved.pending_approver_ids,
            ),
        )
        return RequestSummary.from_request(saved)

    async def delete(self, request_id: UUID, actor: ActorContext) -> None:
        """
        Hard-delete a request and its approvals.

        Owners may delete drafts; super administrators and steward approvers may
        also delete declined or completed requests.
        """
        request = await self.store.get_request(request_id)
        capabilities = resolve_capabilities(request, actor, await self.resolver.is_steward(actor))

        privileged = capabilities & {Capability.OWNER, Capability.ADMINISTRATOR, Capability.STEWARD}
        if not privileged:
            raise NotAuthorizedError(
                "You do not have permission to delete this request",
                details={"actor_id": actor.user_id},
            )
        if not transitions.can_delete(request.kind, request.status, privileged):
            raise InvalidStateError(
                f"Request {request.reference_code} cannot be deleted while {request.status.value}",
                details={"status": request.status.value},
            )

        try:
            async with self.store.transaction() as tx:
                await tx.delete_request(request.request_id, expected_version=request.version)
        except VersionConflictError:
            await raise_if_moved(self.store, request)
            raise

        logger.info(
            f"Request {request.reference_code} deleted",
            request_id=str(request.request_id),
            actor_id=actor.user_id,
        )
        notify = [request.requestor_id] if actor.user_id != request.requestor_id else []
        await emit_safely(
            self.audit,
            request_event(actor, AuditAction.DELETE, request, status_before=request.status.value, notify_user_ids=notify),
        )

    # ════════════════════════════════════════════════════════════════════════
    # Approver Actions
    # ════════════════════════════════════════════════════════════════════════

    async def approve(
        self,
        request_id: UUID,
        actor: ActorContext,
        comments: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> RequestSummary:
        """Approve the current stage, advancing to the next stage or to completed."""
        return await self._act(request_id, actor, WorkflowAction.APPROVE, comments=comments, signature=signature)

    async def decline(
        self,
        request_id: UUID,
        actor: ActorContext,
        reason: Optional[str],
        signature: Optional[str] = None,
    ) -> RequestSummary:
        """Decline the request at the current stage (terminal)."""
        reason = _require_text(reason, "reason")
        return await self._act(request_id, actor, WorkflowAction.DECLINE, comments=reason, signature=signature)

    async def return_request(
        self,
        request_id: UUID,
        actor: ActorContext,
        reason: Optional[str],
        return_to: ReturnTarget = ReturnTarget.REQUESTOR,
        signature: Optional[str] = None,
    ) -> RequestSummary:
        """Send the request back to its requestor, or (item, IT manager stage) to the department approver."""
        reason = _require_text(reason, "reason")
        return await self._act(
            request_id,
            actor,
            WorkflowAction.RETURN,
            comments=reason,
            signature=signature,
            return_to=_return_target(return_to),
        )

    async def start_processing(self, request_id: UUID, actor: ActorContext, comments: Optional[str] = None) -> RequestSummary:
        """Service desk picks up an IT-manager-approved item request."""
        return await self._act(request_id, actor, WorkflowAction.PROCESS, comments=comments)

    async def complete(
        self,
        request_id: UUID,
        actor: ActorContext,
        assigned_vehicle_id: Optional[int] = None,
        assigned_driver_id: Optional[int] = None,
        comments: Optional[str] = None,
    ) -> RequestSummary:
        """Final vehicle approval: assign vehicle and driver, mark completed."""
        return await self._act(
            request_id,
            actor,
            WorkflowAction.COMPLETE,
            comments=comments,
            assigned_vehicle_id=assigned_vehicle_id,
            assigned_driver_id=assigned_driver_id,
        )

    async def _act(
        self,
        request_id: UUID,
        actor: ActorContext,
        action: WorkflowAction,
        comments: Optional[str] = None,
        signature: Optional[str] = None,
        return_to: Optional[ReturnTarget] = None,
        assigned_vehicle_id: Optional[int] = None,
        assigned_driver_id: Optional[int] = None,
    ) -> RequestSummary:
        request = await self.store.get_request(request_id)

        if (
            action == WorkflowAction.RETURN
            and request.kind == RequestKind.VEHICLE
            and return_to == ReturnTarget.DEPARTMENT_APPROVER
        ):
            raise WorkflowValidationError(
                "Vehicle requests can only be returned to the requestor",
                details={"return_to": return_to.value},
            )

        if actor.user_id not in request.pending_approver_ids:
            raise NotAuthorizedError(
                f"You are not an approver for request {request.reference_code} at this stage",
                details={"status": request.status.value},
            )

        capabilities = resolve_capabilities(request, actor, await self.resolver.is_steward(actor))
        capability, target = self._transition(request, action, capabilities)

        if return_to == ReturnTarget.DEPARTMENT_APPROVER and request.status not in transitions.RETURN_TO_DEPARTMENT_FROM:
            raise InvalidStateError(
                "Requests can only be returned to the department approver from the IT manager stage",
                details={"status": request.status.value},
            )

        if target == ItemRequestStatus.COMPLETED:
            if isinstance(request, VehicleRequest):
                await self._check_resources(assigned_vehicle_id, assigned_driver_id)
            if self.completion_gate is not None and not self.completion_gate(request):
                raise InvalidStateError(
                    f"Request {request.reference_code} cannot be completed yet",
                    details={"status": request.status.value, "reason": "completion_gate"},
                )

        now = utc_now()
        update: Dict[str, Any] = {"status": target, "returned_to": return_to if action == WorkflowAction.RETURN else None}
        if target == ItemRequestStatus.COMPLETED:
            update["completed_at"] = now
            if isinstance(request, VehicleRequest):
                update["assigned_vehicle_id"] = assigned_vehicle_id
                update["assigned_driver_id"] = assigned_driver_id
        updated = request.model_copy(update=update)
        updated.pending_approver_ids = await self.resolver.resolve(updated)
        self._require_approvers(updated)

        current_stage = transitions.approval_stage(request.kind, request.status, request.returned_to)
        approvals: List[Approval] = []
        decision = APPROVER_ACTION_DECISION.get(action)
        if decision is not None and current_stage is not None:
            approvals.append(await self._decide_stage(request, current_stage, decision, actor, comments, signature))
        approvals.extend(await self._open_stage(updated, exclude=current_stage))

        saved = await commit_request(self.store, request, updated, approvals)

        notify = self._notify_after(action, saved)
        log = logger.success if saved.status == ItemRequestStatus.COMPLETED else logger.info
        log(
            f"Request {saved.reference_code} {request.status.value} -> {saved.status.value}",
            request_id=str(saved.request_id),
            action=action.value,
            actor_id=actor.user_id,
            capability=capability.value,
        )

        details: Dict[str, Any] = {
            "status_before": request.status.value,
            "status_after": saved.status.value,
            "stage": current_stage.value if current_stage else None,
            "pending_approver_ids": saved.pending_approver_ids,
            "notify_user_ids": notify,
        }
        if action in (WorkflowAction.DECLINE, WorkflowAction.RETURN):
            details["reason"] = comments
        else:
            details["comments"] = comments
        if action == WorkflowAction.RETURN:
            details["return_to"] = return_to.value
        if isinstance(saved, VehicleRequest) and saved.status == ItemRequestStatus.COMPLETED:
            details["assigned_vehicle_id"] = saved.assigned_vehicle_id
            details["assigned_driver_id"] = saved.assigned_driver_id

        await emit_safely(self.audit, request_event(actor, APPROVER_ACTION_AUDIT[action], saved, **details))
        return RequestSummary.from_request(saved)

    # ════════════════════════════════════════════════════════════════════════
    # Helpers
    # ════════════════════════════════════════════════════════════════════════

    def _transition(self, request: AnyRequest, action: WorkflowAction, capabilities: Iterable[Capability]):
        found = transitions.lookup(request.kind, request.status, action, capabilities)
        if found is None:
            raise InvalidStateError(
                f"Cannot {action.value} request {request.reference_code} while {request.status.value}",
                details={"status": request.status.value, "action": action.value},
            )
        return found

    def _require_approvers(self, updated: AnyRequest) -> None:
        if updated.pending_approver_ids or not transitions.awaits_action(updated.status):
            return
        logger.error(
            f"No approver available for {updated.reference_code}",
            request_id=str(updated.request_id),
            status=updated.status.value,
            department_id=updated.department_id,
        )
        raise InvalidStateError(
            f"No approver available for request {updated.reference_code} while {updated.status.value}",
            details={"status": updated.status.value, "department_id": updated.department_id},
        )

    async def _check_resources(self, vehicle_id: Optional[int], driver_id: Optional[int]) -> None:
        if vehicle_id is not None:
            vehicle = await self.store.get_vehicle(vehicle_id)
            if vehicle is None:
                raise NotFoundError(f"Vehicle {vehicle_id} not found", details={"vehicle_id": vehicle_id})
            if not vehicle.is_active:
                raise WorkflowValidationError(f"Vehicle {vehicle_id} is not active", details={"vehicle_id": vehicle_id})
        if driver_id is not None:
            driver = await self.store.get_driver(driver_id)
            if driver is None:
                raise NotFoundError(f"Driver {driver_id} not found", details={"driver_id": driver_id})
            if not driver.is_active:
                raise WorkflowValidationError(f"Driver {driver_id} is not active", details={"driver_id": driver_id})

    async def _decide_stage(
        self,
        request: AnyRequest,
        stage: ApprovalStage,
        decision: ApprovalDecision,
        actor: ActorContext,
        comments: Optional[str],
        signature: Optional[str],
    ) -> Approval:
        row = await self.store.get_approval(request.request_id, stage)
        if row is None:
            row = Approval(request_id=request.request_id, stage=stage)
        return row.decide(decision, actor.user_id, comments, signature)

    async def _open_stage(self, updated: AnyRequest, exclude: Optional[ApprovalStage]) -> List[Approval]:
        """Pending approval row for the stage the request now waits on (reset if it existed)."""
        stage = transitions.approval_stage(updated.kind, updated.status, updated.returned_to)
        if stage is None or stage == exclude:
            return []
        row = await self.store.get_approval(updated.request_id, stage)
        if row is None:
            return [Approval(request_id=updated.request_id, stage=stage)]
        return [row.reopen()]

    def _notify_after(self, action: WorkflowAction, saved: AnyRequest) -> List[int]:
        notify: Set[int] = set(saved.pending_approver_ids)
        if action != WorkflowAction.PROCESS:
            notify.add(saved.requestor_id)
        return sorted(notify)
