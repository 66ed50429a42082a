"""
In-Memory Entity Store

Process-local store used when no domain database is configured, and in tests.
A single asyncio.Lock serializes transactions; writes are staged and applied on
successful exit so a failing transaction leaves no partial state.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from uuid import UUID

from loguru import logger

from svcreq_api.workflow.db.store import GROUPABLE_COLUMNS
from svcreq_api.workflow.db.store import EntityStore
from svcreq_api.workflow.db.store import StoreTransaction
from svcreq_api.workflow.enums import ApprovalStage
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import SortField
from svcreq_api.workflow.enums import SortOrder
from svcreq_api.workflow.enums import UserRole
from svcreq_api.workflow.exceptions import NotFoundError
from svcreq_api.workflow.exceptions import VersionConflictError
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import Approval
from svcreq_api.workflow.models import Department
from svcreq_api.workflow.models import Driver
from svcreq_api.workflow.models import RequestFilters
from svcreq_api.workflow.models import RequestScope
from svcreq_api.workflow.models import User
from svcreq_api.workflow.models import Vehicle
from svcreq_api.workflow.models.request import utc_now


def _sort_requests(requests: List[AnyRequest], filters: RequestFilters) -> List[AnyRequest]:
    """Order a listing; ties on status or requestor fall back to newest first."""
    descending = filters.sort_order == SortOrder.DESC
    if filters.sort_by == SortField.DATE:
        return sorted(requests, key=lambda r: r.created_at, reverse=descending)

    newest_first = sorted(requests, key=lambda r: r.created_at, reverse=True)
    if filters.sort_by == SortField.STATUS:
        return sorted(newest_first, key=lambda r: r.status.value, reverse=descending)
    return sorted(newest_first, key=lambda r: r.requestor_id, reverse=descending)


class InMemoryTransaction(StoreTransaction):
    """Staged writes against an InMemoryEntityStore (lock held by the store)."""

    def __init__(self, store: "InMemoryEntityStore"):
        self._store = store
        self._ops: List[Callable[[], None]] = []
        # Versions as seen by this transaction, including its own staged writes
        self._versions: Dict[UUID, Optional[int]] = {}

    def _current_version(self, request_id: UUID) -> Optional[int]:
        if request_id in self._versions:
            return self._versions[request_id]
        stored = self._store._requests.get(request_id)
        return stored.version if stored else None

    async def insert_request(self, request: AnyRequest) -> AnyRequest:
        if self._current_version(request.request_id) is not None:
            raise VersionConflictError(f"Request {request.request_id} already exists")
        if request.reference_code in self._store._reference_index:
            raise VersionConflictError(f"Reference code {request.reference_code} already in use")

        stored = request.model_copy(deep=True)
        self._versions[stored.request_id] = stored.version
        self._ops.append(lambda: self._store._put_request(stored))
        return stored.model_copy(deep=True)

    async def save_request(self, request: AnyRequest, expected_version: int) -> AnyRequest:
        current = self._current_version(request.request_id)
        if current is None:
            raise NotFoundError(f"Request {request.request_id} not found")
        if current != expected_version:
            raise VersionConflictError(
                f"Request {request.request_id} was modified concurrently",
                details={"expected_version": expected_version, "actual_version": current},
            )

        stored = request.model_copy(update={"version": expected_version + 1, "updated_at": utc_now()}, deep=True)
        self._versions[stored.request_id] = stored.version
        self._ops.append(lambda: self._store._put_request(stored))
        return stored.model_copy(deep=True)

    async def save_approval(self, approval: Approval) -> None:
        stored = approval.model_copy(deep=True)
        self._ops.append(lambda: self._store._put_approval(stored))

    async def delete_request(self, request_id: UUID, expected_version: int) -> None:
        current = self._current_version(request_id)
        if current is None:
            raise NotFoundError(f"Request {request_id} not found")
        if current != expected_version:
            raise VersionConflictError(f"Request {request_id} was modified concurrently")

        self._versions[request_id] = None
        self._ops.append(lambda: self._store._drop_request(request_id))

    def commit(self) -> None:
        for op in self._ops:
            op()
        self._ops.clear()


class InMemoryEntityStore(EntityStore):
    """Dictionary-backed EntityStore."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._requests: Dict[UUID, AnyRequest] = {}
        self._reference_index: Dict[str, UUID] = {}
        self._approvals: Dict[UUID, Dict[ApprovalStage, Approval]] = {}
        self._users: Dict[int, User] = {}
        self._departments: Dict[int, Department] = {}
        self._vehicles: Dict[int, Vehicle] = {}
        self._drivers: Dict[int, Driver] = {}

    # ────────────────────────────────────────────────────────────────────────
    # Seeding (directory records are owned outside the workflow)
    # ────────────────────────────────────────────────────────────────────────

    def add_department(self, department: Department) -> Department:
        self._departments[department.department_id] = department
        return department

    def add_user(self, user: User) -> User:
        self._users[user.user_id] = user
        return user

    def add_vehicle(self, vehicle: Vehicle) -> Vehicle:
        self._vehicles[vehicle.vehicle_id] = vehicle
        return vehicle

    def add_driver(self, driver: Driver) -> Driver:
        self._drivers[driver.driver_id] = driver
        return driver

    # ────────────────────────────────────────────────────────────────────────
    # Requests
    # ────────────────────────────────────────────────────────────────────────

    async def get_request(self, request_id: UUID) -> AnyRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", details={"request_id": str(request_id)})
        snapshot = request.model_copy(deep=True)
        # Yield after reading so concurrent callers can act on the same version
        await asyncio.sleep(0)
        return snapshot

    async def find_by_reference(self, reference_code: str) -> AnyRequest:
        request_id = self._reference_index.get(reference_code)
        if request_id is None:
            raise NotFoundError(
                f"Request with reference {reference_code} not found",
                details={"reference_code": reference_code},
            )
        return await self.get_request(request_id)

    async def list_pending_for(self, user_id: int) -> List[AnyRequest]:
        matches = [r for r in self._requests.values() if user_id in r.pending_approver_ids]
        matches.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in matches]

    async def list_requests(
        self,
        kind: RequestKind,
        scope: RequestScope,
        filters: RequestFilters,
    ) -> Tuple[List[AnyRequest], int]:
        matches = [
            r for r in self._requests.values() if r.kind == kind and scope.covers(r) and filters.matches(r)
        ]
        ordered = _sort_requests(matches, filters)
        page = ordered[filters.offset : filters.offset + filters.limit]
        return [r.model_copy(deep=True) for r in page], len(matches)

    async def count_requests(self, kind: RequestKind, scope: RequestScope, group_by: str) -> Dict[str, int]:
        if group_by not in GROUPABLE_COLUMNS:
            raise ValueError(f"Cannot group requests by {group_by}")
        counts: Dict[str, int] = {}
        for request in self._requests.values():
            if request.kind != kind or not scope.covers(request):
                continue
            value = getattr(request, group_by, None)
            if value is None:
                continue
            counts[value.value] = counts.get(value.value, 0) + 1
        return counts

    async def list_approvals(self, request_id: UUID) -> List[Approval]:
        rows = sorted(self._approvals.get(request_id, {}).values(), key=lambda a: a.created_at)
        return [a.model_copy(deep=True) for a in rows]

    async def get_approval(self, request_id: UUID, stage: ApprovalStage) -> Optional[Approval]:
        approval = self._approvals.get(request_id, {}).get(stage)
        return approval.model_copy(deep=True) if approval else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
        async with self._lock:
            tx = InMemoryTransaction(self)
            yield tx
            tx.commit()

    def _put_request(self, request: AnyRequest) -> None:
        self._requests[request.request_id] = request
        self._reference_index[request.reference_code] = request.request_id

    def _put_approval(self, approval: Approval) -> None:
        self._approvals.setdefault(approval.request_id, {})[approval.stage] = approval

    def _drop_request(self, request_id: UUID) -> None:
        request = self._requests.pop(request_id, None)
        if request is not None:
            self._reference_index.pop(request.reference_code, None)
        self._approvals.pop(request_id, None)
        logger.debug("Request removed from in-memory store", request_id=str(request_id))

    # ────────────────────────────────────────────────────────────────────────
    # Directory
    # ────────────────────────────────────────────────────────────────────────

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    async def list_active_users(self, role: UserRole, department_id: Optional[int] = None) -> List[User]:
        users = [
            u
            for u in self._users.values()
            if u.is_active and u.role == role and (department_id is None or u.department_id == department_id)
        ]
        return sorted(users, key=lambda u: u.user_id)

    async def get_department(self, department_id: int) -> Optional[Department]:
        return self._departments.get(department_id)

    async def list_vehicle_steward_department_ids(self) -> List[int]:
        return sorted(d.department_id for d in self._departments.values() if d.is_active and d.is_vehicle_steward)

    async def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        return self._vehicles.get(vehicle_id)

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        return self._drivers.get(driver_id)

    def snapshot(self) -> Tuple[int, int]:
        """(request count, approval count); handy for asserting no partial writes."""
        return len(self._requests), sum(len(rows) for rows in self._approvals.values())
