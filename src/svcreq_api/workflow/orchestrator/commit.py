"""
Request Commit

Atomic read-modify-write helpers shared by the workflow engine and the
verification flow.
"""

from typing import Callable
from typing import Iterable
from typing import Optional

from loguru import logger

from svcreq_api.workflow.db.store import EntityStore
from svcreq_api.workflow.enums import AuditAction
from svcreq_api.workflow.exceptions import InvalidStateError
from svcreq_api.workflow.exceptions import VersionConflictError
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import Approval
from svcreq_api.workflow.models import AuditEvent

StateMoved = Callable[[AnyRequest, AnyRequest], bool]


def status_moved(before: AnyRequest, current: AnyRequest) -> bool:
    return current.status != before.status or current.returned_to != before.returned_to


async def commit_request(
    store: EntityStore,
    original: AnyRequest,
    updated: AnyRequest,
    approvals: Iterable[Approval] = (),
    moved: StateMoved = status_moved,
) -> AnyRequest:
    """
    Save a request and its approval rows in one transaction.

    The write is compare-and-swap on the version read into `original`.

    Raises:
        InvalidStateError: Another caller changed the state first
        VersionConflictError: Version moved without a state change (retryable)
    """
    try:
        async with store.transaction() as tx:
            saved = await tx.save_request(updated, expected_version=original.version)
            for approval in approvals:
                await tx.save_approval(approval)
        return saved
    except VersionConflictError:
        await raise_if_moved(store, original, moved)
        raise


async def raise_if_moved(store: EntityStore, original: AnyRequest, moved: StateMoved = status_moved) -> None:
    """Translate a lost race into InvalidStateError when the state really changed."""
    current = await store.get_request(original.request_id)
    if moved(original, current):
        logger.warning(
            "Concurrent update won the race",
            request_id=str(original.request_id),
            status_read=original.status.value,
            status_now=current.status.value,
        )
        raise InvalidStateError(
            f"Request {original.reference_code} is already {current.status.value}",
            details={"status": current.status.value, "version": current.version},
        ) from None


def request_event(
    actor: Optional[ActorContext],
    action: AuditAction,
    request: AnyRequest,
    **details,
) -> AuditEvent:
    """Audit event for a request-level change."""
    details.setdefault("reference_code", request.reference_code)
    details.setdefault("kind", request.kind.value)
    return AuditEvent(
        actor_id=actor.user_id if actor else None,
        action=action,
        entity_type=request.entity_type,
        entity_id=str(request.request_id),
        details=details,
    )
