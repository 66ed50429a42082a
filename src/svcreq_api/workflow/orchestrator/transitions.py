"""
Transition Table

The request state machine as data. A transition is legal when the key
(kind, status, action, capability) is present; the value is the target status.

Capabilities are tried in precedence order, so a steward approver acting on a
vehicle request gets the steward path (chain collapse) before the plain
approver path.
"""

from typing import Dict
from typing import FrozenSet
from typing import Iterable
from typing import Optional
from typing import Tuple

from svcreq_api.workflow.enums import ApprovalStage
from svcreq_api.workflow.enums import Capability
from svcreq_api.workflow.enums import ItemRequestStatus as Item
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import ReturnTarget
from svcreq_api.workflow.enums import VehicleRequestStatus as Vehicle
from svcreq_api.workflow.enums import WorkflowAction

ITEM = RequestKind.ITEM
VEHICLE = RequestKind.VEHICLE

OWNER = Capability.OWNER
APPROVER = Capability.APPROVER
STEWARD = Capability.STEWARD
ADMINISTRATOR = Capability.ADMINISTRATOR

CAPABILITY_PRECEDENCE = (STEWARD, ADMINISTRATOR, APPROVER, OWNER)

TransitionKey = Tuple[RequestKind, str, WorkflowAction, Capability]

# ════════════════════════════════════════════════════════════════════════════
# Item Requests
# ════════════════════════════════════════════════════════════════════════════

ITEM_TRANSITIONS: Dict[TransitionKey, str] = {
    # Requestor
    (ITEM, Item.DRAFT, WorkflowAction.SUBMIT, OWNER): Item.SUBMITTED,
    (ITEM, Item.RETURNED, WorkflowAction.SUBMIT, OWNER): Item.SUBMITTED,
    # Department approver (also handles requests returned to the department)
    (ITEM, Item.SUBMITTED, WorkflowAction.APPROVE, APPROVER): Item.DEPARTMENT_APPROVED,
    (ITEM, Item.SUBMITTED, WorkflowAction.DECLINE, APPROVER): Item.DEPARTMENT_DECLINED,
    (ITEM, Item.SUBMITTED, WorkflowAction.RETURN, APPROVER): Item.RETURNED,
    (ITEM, Item.RETURNED, WorkflowAction.APPROVE, APPROVER): Item.DEPARTMENT_APPROVED,
    (ITEM, Item.RETURNED, WorkflowAction.DECLINE, APPROVER): Item.DEPARTMENT_DECLINED,
    (ITEM, Item.RETURNED, WorkflowAction.RETURN, APPROVER): Item.RETURNED,
    # IT manager
    (ITEM, Item.DEPARTMENT_APPROVED, WorkflowAction.APPROVE, APPROVER): Item.IT_MANAGER_APPROVED,
    (ITEM, Item.DEPARTMENT_APPROVED, WorkflowAction.DECLINE, APPROVER): Item.IT_MANAGER_DECLINED,
    (ITEM, Item.DEPARTMENT_APPROVED, WorkflowAction.RETURN, APPROVER): Item.RETURNED,
    # Service desk
    (ITEM, Item.IT_MANAGER_APPROVED, WorkflowAction.PROCESS, APPROVER): Item.SERVICE_DESK_PROCESSING,
    (ITEM, Item.IT_MANAGER_APPROVED, WorkflowAction.APPROVE, APPROVER): Item.COMPLETED,
    (ITEM, Item.SERVICE_DESK_PROCESSING, WorkflowAction.APPROVE, APPROVER): Item.COMPLETED,
}

# ════════════════════════════════════════════════════════════════════════════
# Vehicle Requests
# ════════════════════════════════════════════════════════════════════════════

VEHICLE_TRANSITIONS: Dict[TransitionKey, str] = {
    # Requestor
    (VEHICLE, Vehicle.DRAFT, WorkflowAction.SUBMIT, OWNER): Vehicle.SUBMITTED,
    (VEHICLE, Vehicle.RETURNED, WorkflowAction.SUBMIT, OWNER): Vehicle.SUBMITTED,
    # Department approver
    (VEHICLE, Vehicle.SUBMITTED, WorkflowAction.APPROVE, APPROVER): Vehicle.DEPARTMENT_APPROVED,
    (VEHICLE, Vehicle.SUBMITTED, WorkflowAction.DECLINE, APPROVER): Vehicle.DECLINED,
    (VEHICLE, Vehicle.SUBMITTED, WorkflowAction.RETURN, APPROVER): Vehicle.RETURNED,
    # Steward approvers collapse the chain from submitted
    (VEHICLE, Vehicle.SUBMITTED, WorkflowAction.APPROVE, STEWARD): Vehicle.COMPLETED,
    (VEHICLE, Vehicle.SUBMITTED, WorkflowAction.COMPLETE, STEWARD): Vehicle.COMPLETED,
    # Final (steward) stage
    (VEHICLE, Vehicle.DEPARTMENT_APPROVED, WorkflowAction.APPROVE, APPROVER): Vehicle.COMPLETED,
    (VEHICLE, Vehicle.DEPARTMENT_APPROVED, WorkflowAction.COMPLETE, APPROVER): Vehicle.COMPLETED,
    (VEHICLE, Vehicle.DEPARTMENT_APPROVED, WorkflowAction.APPROVE, STEWARD): Vehicle.COMPLETED,
    (VEHICLE, Vehicle.DEPARTMENT_APPROVED, WorkflowAction.COMPLETE, STEWARD): Vehicle.COMPLETED,
    (VEHICLE, Vehicle.DEPARTMENT_APPROVED, WorkflowAction.DECLINE, APPROVER): Vehicle.DECLINED,
    (VEHICLE, Vehicle.DEPARTMENT_APPROVED, WorkflowAction.RETURN, APPROVER): Vehicle.RETURNED,
}

TRANSITIONS: Dict[TransitionKey, str] = {**ITEM_TRANSITIONS, **VEHICLE_TRANSITIONS}

# ════════════════════════════════════════════════════════════════════════════
# Deletion, terminal and stage lookups
# ════════════════════════════════════════════════════════════════════════════

TERMINAL_STATUSES: Dict[RequestKind, FrozenSet[str]] = {
    ITEM: frozenset({Item.DEPARTMENT_DECLINED, Item.IT_MANAGER_DECLINED, Item.COMPLETED}),
    VEHICLE: frozenset({Vehicle.DECLINED, Vehicle.COMPLETED}),
}

# Statuses with an empty pending approver set
IDLE_STATUSES: FrozenSet[str] = frozenset(
    {
        Item.DRAFT,
        Item.COMPLETED,
        Item.DEPARTMENT_DECLINED,
        Item.IT_MANAGER_DECLINED,
        Vehicle.DECLINED,
    }
)

DELETABLE_STATUSES: Dict[Tuple[RequestKind, Capability], FrozenSet[str]] = {
    (ITEM, OWNER): frozenset({Item.DRAFT}),
    (VEHICLE, OWNER): frozenset({Vehicle.DRAFT}),
    (ITEM, ADMINISTRATOR): frozenset({Item.DRAFT}) | TERMINAL_STATUSES[ITEM],
    (VEHICLE, ADMINISTRATOR): frozenset({Vehicle.DRAFT}) | TERMINAL_STATUSES[VEHICLE],
    (ITEM, STEWARD): frozenset({Item.DRAFT}) | TERMINAL_STATUSES[ITEM],
    (VEHICLE, STEWARD): frozenset({Vehicle.DRAFT}) | TERMINAL_STATUSES[VEHICLE],
}

# Return to the department approver: item requests at the IT manager stage only
RETURN_TO_DEPARTMENT_FROM = frozenset({Item.DEPARTMENT_APPROVED})


def lookup(
    kind: RequestKind,
    status: str,
    action: WorkflowAction,
    capabilities: Iterable[Capability],
) -> Optional[Tuple[Capability, str]]:
    """
    Find the transition an actor with these capabilities may take.

    Returns:
        (capability used, target status), or None if the action is illegal
    """
    held = set(capabilities)
    for capability in CAPABILITY_PRECEDENCE:
        if capability not in held:
            continue
        target = TRANSITIONS.get((kind, status, action, capability))
        if target is not None:
            return capability, target
    return None


def can_delete(kind: RequestKind, status: str, capabilities: Iterable[Capability]) -> bool:
    return any(status in DELETABLE_STATUSES.get((kind, capability), frozenset()) for capability in capabilities)


def is_terminal(kind: RequestKind, status: str) -> bool:
    return status in TERMINAL_STATUSES[kind]


def awaits_action(status: str) -> bool:
    """Someone must act next, so the pending approver set may not be empty."""
    return status not in IDLE_STATUSES


def approval_stage(kind: RequestKind, status: str, returned_to: Optional[ReturnTarget] = None) -> Optional[ApprovalStage]:
    """Approval stage a request waits on in this status (None when nobody approves)."""
    if status == Item.SUBMITTED:
        return ApprovalStage.DEPARTMENT
    if status == Item.RETURNED:
        return ApprovalStage.DEPARTMENT if returned_to == ReturnTarget.DEPARTMENT_APPROVER else None
    if kind == ITEM:
        if status == Item.DEPARTMENT_APPROVED:
            return ApprovalStage.IT_MANAGER
        if status in (Item.IT_MANAGER_APPROVED, Item.SERVICE_DESK_PROCESSING):
            return ApprovalStage.SERVICE_DESK
        return None
    if status == Vehicle.DEPARTMENT_APPROVED:
        return ApprovalStage.STEWARD
    return None
