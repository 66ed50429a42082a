"""
Entity Store

Abstract persistence interface consumed by the workflow engine.

Reads happen outside a transaction; every write goes through a StoreTransaction
so that the request row and its approval rows commit atomically. Request writes
are compare-and-swap on the request's version.
"""

from abc import ABC
from abc import abstractmethod
from typing import AsyncContextManager
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from uuid import UUID

from svcreq_api.workflow.enums import ApprovalStage
from svcreq_api.workflow.enums import RequestKind
from svcreq_api.workflow.enums import UserRole
from svcreq_api.workflow.models import AnyRequest
from svcreq_api.workflow.models import Approval
from svcreq_api.workflow.models import Department
from svcreq_api.workflow.models import Driver
from svcreq_api.workflow.models import RequestFilters
from svcreq_api.workflow.models import RequestScope
from svcreq_api.workflow.models import User
from svcreq_api.workflow.models import Vehicle

# Columns request counts can be grouped by
GROUPABLE_COLUMNS = ("status", "verification_status")


class StoreTransaction(ABC):
    """Unit of work; all writes commit together or not at all."""

    @abstractmethod
    async def insert_request(self, request: AnyRequest) -> AnyRequest:
        """Insert a new request."""

    @abstractmethod
    async def save_request(self, request: AnyRequest, expected_version: int) -> AnyRequest:
        """
        Persist request fields if the stored version still equals expected_version.

        Returns:
            The request with its version incremented

        Raises:
            VersionConflictError: Stored version moved (concurrent writer won)
            NotFoundError: Request no longer exists
        """

    @abstractmethod
    async def save_approval(self, approval: Approval) -> None:
        """Insert or replace the approval row for (request_id, stage)."""

    @abstractmethod
    async def delete_request(self, request_id: UUID, expected_version: int) -> None:
        """Delete a request and its approvals (compare-and-swap on version)."""


class EntityStore(ABC):
    """Requests, approvals and the directory entities the workflow reads."""

    # ────────────────────────────────────────────────────────────────────────
    # Requests
    # ────────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_request(self, request_id: UUID) -> AnyRequest:
        """
        Load a request.

        Raises:
            NotFoundError: Unknown request_id
        """

    @abstractmethod
    async def find_by_reference(self, reference_code: str) -> AnyRequest:
        """Load a request by its human-readable reference code."""

    @abstractmethod
    async def list_pending_for(self, user_id: int) -> List[AnyRequest]:
        """Requests whose pending approver set contains user_id."""

    @abstractmethod
    async def list_requests(
        self,
        kind: RequestKind,
        scope: RequestScope,
        filters: RequestFilters,
    ) -> Tuple[List[AnyRequest], int]:
        """
        One page of requests of a kind inside scope that match filters.

        Returns:
            (requests on the requested page, total matching requests)
        """

    @abstractmethod
    async def count_requests(self, kind: RequestKind, scope: RequestScope, group_by: str) -> Dict[str, int]:
        """Request counts inside scope grouped by one of GROUPABLE_COLUMNS."""

    @abstractmethod
    async def list_approvals(self, request_id: UUID) -> List[Approval]:
        """Approval rows of a request, oldest first."""

    @abstractmethod
    async def get_approval(self, request_id: UUID, stage: ApprovalStage) -> Optional[Approval]:
        """Approval row of a request for one stage, if it exists."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[StoreTransaction]:
        """Open a unit of work: `async with store.transaction() as tx:`."""

    # ────────────────────────────────────────────────────────────────────────
    # Directory
    # ────────────────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]:
        pass

    @abstractmethod
    async def list_active_users(self, role: UserRole, department_id: Optional[int] = None) -> List[User]:
        """Active users holding role, optionally restricted to one department."""

    @abstractmethod
    async def get_department(self, department_id: int) -> Optional[Department]:
        pass

    @abstractmethod
    async def list_vehicle_steward_department_ids(self) -> List[int]:
        """Active departments flagged as vehicle stewards."""

    @abstractmethod
    async def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        pass

    @abstractmethod
    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        pass

    async def is_department_vehicle_steward(self, department_id: Optional[int]) -> bool:
        if department_id is None:
            return False
        return department_id in await self.list_vehicle_steward_department_ids()

    async def list_steward_approvers(self) -> List[User]:
        """Active department approvers of every vehicle steward department."""
        approvers: List[User] = []
        for department_id in await self.list_vehicle_steward_department_ids():
            approvers.extend(await self.list_active_users(UserRole.DEPARTMENT_APPROVER, department_id))
        return approvers
