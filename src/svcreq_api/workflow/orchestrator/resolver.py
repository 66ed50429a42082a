"""
Pending-Approvers Resolver

Single source of truth for who may act on a request next, for what an actor
is allowed to do with a request (capability resolution) and for which requests
an actor may read (scope). No other module compares roles.
"""

from typing import Iterable
from typing import List
from typing import Set

from loguru import logger

from svcreq_api.workflow.db.store import EntityStore
from svcreq_api.workflow.enums import Capability
from svcreq_api.workflow.enums import ItemRequestStatus
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import ReturnTarget
from svcreq_api.workflow.enums import UserRole
from svcreq_api.workflow.enums import VehicleRequestStatus
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import RequestScope
from svcreq_api.workflow.models import User

FULL_VISIBILITY_ROLES = {UserRole.IT_MANAGER, UserRole.SERVICE_DESK, UserRole.SUPER_ADMINISTRATOR}


def _ids(users: Iterable[User]) -> List[int]:
    return sorted({user.user_id for user in users})


def resolve_capabilities(request: AnyRequest, actor: ActorContext, is_steward: bool) -> Set[Capability]:
    """
    Capabilities an actor holds on a request.

    Args:
        request: Request being acted on
        actor: Authenticated caller
        is_steward: Actor is a department approver of a vehicle steward department

    Returns:
        Set of Capability; APPROVER only while the actor is pending and the
        request is not sitting with its requestor
    """
    capabilities: Set[Capability] = set()

    if actor.user_id == request.requestor_id:
        capabilities.add(Capability.OWNER)
    if actor.is_administrator:
        capabilities.add(Capability.ADMINISTRATOR)
    if is_steward:
        capabilities.add(Capability.STEWARD)

    returned_to_requestor = (
        request.status == ItemRequestStatus.RETURNED and request.returned_to == ReturnTarget.REQUESTOR
    )
    if actor.user_id in request.pending_approver_ids and not returned_to_requestor:
        capabilities.add(Capability.APPROVER)

    return capabilities


class PendingApproverResolver:
    """Computes the pending approver set for a request's current status."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def is_steward(self, actor: ActorContext) -> bool:
        """Actor is a department approver in a vehicle steward department."""
        if actor.role != UserRole.DEPARTMENT_APPROVER:
            return False
        return await self.store.is_department_vehicle_steward(actor.department_id)

    async def resolve(self, request: AnyRequest) -> List[int]:
        """
        Return the sorted, deduplicated ids entitled to act next.

        Empty for draft, completed and declined requests; a request awaiting
        action never resolves to an empty set while a super administrator exists.
        """
        status = request.status

        if status == ItemRequestStatus.RETURNED:
            if request.returned_to == ReturnTarget.DEPARTMENT_APPROVER:
                return await self._department_stage(request)
            return [request.requestor_id]

        if status == ItemRequestStatus.SUBMITTED:
            return await self._department_stage(request)

        if request.kind == RequestKind.ITEM:
            if status == ItemRequestStatus.DEPARTMENT_APPROVED:
                return await self._with_fallback(request, await self.store.list_active_users(UserRole.IT_MANAGER))
            if status in (ItemRequestStatus.IT_MANAGER_APPROVED, ItemRequestStatus.SERVICE_DESK_PROCESSING):
                return await self._with_fallback(request, await self.store.list_active_users(UserRole.SERVICE_DESK))
            return []

        if status == VehicleRequestStatus.DEPARTMENT_APPROVED:
            return await self._with_fallback(request, await self.store.list_steward_approvers())
        return []

    async def _department_stage(self, request: AnyRequest) -> List[int]:
        approvers = await self.store.list_active_users(UserRole.DEPARTMENT_APPROVER, request.department_id)
        if request.kind == RequestKind.VEHICLE:
            approvers = approvers + await self.store.list_steward_approvers()
        return await self._with_fallback(request, approvers)

    async def _with_fallback(self, request: AnyRequest, users: List[User]) -> List[int]:
        ids = _ids(users)
        if ids:
            return ids

        administrators = _ids(await self.store.list_active_users(UserRole.SUPER_ADMINISTRATOR))
        logger.warning(
            "No approvers for stage, escalating to super administrators",
            request_id=str(request.request_id),
            status=request.status.value,
            escalated_to=administrators,
        )
        return administrators


def request_scope(actor: ActorContext, is_steward: bool) -> RequestScope:
    """
    Requests an actor may read.

    IT managers, the service desk and super administrators see every submitted
    request; department approvers see their department's (stewards also every
    vehicle request); everyone sees their own requests and those they verify.
    """
    return RequestScope(
        viewer_id=actor.user_id,
        all_departments=actor.role in FULL_VISIBILITY_ROLES,
        department_id=actor.department_id if actor.role == UserRole.DEPARTMENT_APPROVER else None,
        steward=is_steward,
    )


def can_view(request: AnyRequest, actor: ActorContext, is_steward: bool) -> bool:
    return request_scope(actor, is_steward).covers(request)
