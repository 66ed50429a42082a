"""
PostgreSQL Entity Store

asyncpg-backed EntityStore over the svcreq schema.

Kind-specific request fields (item lines, trip details) live in the JSONB
`payload` column; everything the workflow filters or guards on is a real column.
"""

import json
from contextlib import asynccontextmanager
from typing import Any
from typing import AsyncIterator
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from uuid import UUID

import asyncpg
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
from svcreq_api.workflow.models import VehicleRequest
from svcreq_api.workflow.models import request_from_record

PAYLOAD_FIELDS = {
    RequestKind.ITEM: {"items", "reason", "priority", "date_required", "user_name", "user_position"},
    RequestKind.VEHICLE: {"trip"},
}

_REQUEST_COLUMNS = """
    request_id, reference_code, kind, requestor_id, department_id, status,
    pending_approver_ids, returned_to, comments, requestor_signature,
    verification_status, verifier_id, verifier_comments, verified_at,
    assigned_vehicle_id, assigned_driver_id, payload, version,
    created_at, updated_at, submitted_at, completed_at
"""


def _enum_value(value: Any) -> Any:
    return value.value if value is not None and hasattr(value, "value") else value


def _request_params(request: AnyRequest) -> Dict[str, Any]:
    """Column values for a request row."""
    payload = request.model_dump(mode="json", include=PAYLOAD_FIELDS[request.kind])
    params = {
        "status": request.status.value,
        "pending_approver_ids": list(request.pending_approver_ids),
        "returned_to": _enum_value(request.returned_to),
        "comments": request.comments,
        "requestor_signature": request.requestor_signature,
        "verification_status": None,
        "verifier_id": None,
        "verifier_comments": None,
        "verified_at": None,
        "assigned_vehicle_id": None,
        "assigned_driver_id": None,
        "payload": json.dumps(payload, default=str),
        "submitted_at": request.submitted_at,
        "completed_at": request.completed_at,
    }
    if isinstance(request, VehicleRequest):
        params.update(
            verification_status=request.verification_status.value,
            verifier_id=request.verifier_id,
            verifier_comments=request.verifier_comments,
            verified_at=request.verified_at,
            assigned_vehicle_id=request.assigned_vehicle_id,
            assigned_driver_id=request.assigned_driver_id,
        )
    return params


def _row_to_request(row: asyncpg.Record) -> AnyRequest:
    record = dict(row)
    payload = record.pop("payload") or {}
    if isinstance(payload, str):
        payload = json.loads(payload)
    record.update(payload)
    record["pending_approver_ids"] = list(record.get("pending_approver_ids") or [])
    if record.get("verification_status") is None:
        record.pop("verification_status", None)
    return request_from_record(record)


def _row_to_approval(row: asyncpg.Record) -> Approval:
    return Approval.model_validate(dict(row))


ORDER_COLUMNS = {
    SortField.DATE: "created_at",
    SortField.STATUS: "status",
    SortField.REQUESTOR: "requestor_id",
}


class WhereClause:
    """AND-ed SQL conditions with positional asyncpg parameters."""

    def __init__(self):
        self.conditions: List[str] = []
        self.args: List[Any] = []

    def param(self, value: Any) -> str:
        self.args.append(value)
        return f"${len(self.args)}"

    def add(self, condition: str) -> None:
        self.conditions.append(condition)

    def sql(self) -> str:
        return " AND ".join(self.conditions) or "TRUE"


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _scope_where(kind: RequestKind, scope: RequestScope) -> WhereClause:
    """Rows of a kind visible under scope (mirrors RequestScope.covers)."""
    where = WhereClause()
    where.add(f"kind = {where.param(kind.value)}")

    viewer = where.param(scope.viewer_id)
    visible = [f"requestor_id = {viewer}", f"verifier_id = {viewer}"]
    shared: List[str] = []
    if scope.all_departments:
        shared.append("TRUE")
    if scope.department_id is not None:
        shared.append(f"department_id = {where.param(scope.department_id)}")
    if scope.steward and kind == RequestKind.VEHICLE:
        shared.append("TRUE")
    if shared:
        visible.append(f"(status <> 'draft' AND ({' OR '.join(shared)}))")
    where.add(f"({' OR '.join(visible)})")
    return where


def _apply_filters(where: WhereClause, filters: RequestFilters) -> None:
    if filters.status is not None:
        where.add(f"status = {where.param(filters.status)}")
    if filters.priority is not None:
        where.add(f"payload->>'priority' = {where.param(filters.priority.value)}")
    if filters.department_id is not None:
        where.add(f"department_id = {where.param(filters.department_id)}")
    if filters.requestor_id is not None:
        where.add(f"requestor_id = {where.param(filters.requestor_id)}")

    start, end = filters.submitted_window()
    if start is not None:
        where.add(f"submitted_at >= {where.param(start)}")
    if end is not None:
        where.add(f"submitted_at < {where.param(end)}")

    term = filters.search_term
    if term is not None:
        pattern = where.param(_like_pattern(term))
        searched = [
            "reference_code",
            "payload->>'user_name'",
            "payload->>'reason'",
            "payload->'trip'->>'purpose'",
            "payload->'trip'->>'destination'",
        ]
        where.add("(" + " OR ".join(f"{column} ILIKE {pattern}" for column in searched) + ")")


def _order_by(filters: RequestFilters) -> str:
    direction = "ASC" if filters.sort_order == SortOrder.ASC else "DESC"
    order = f"{ORDER_COLUMNS[filters.sort_by]} {direction}"
    if filters.sort_by != SortField.DATE:
        order += ", created_at DESC"
    return order


class PostgresTransaction(StoreTransaction):
    """Writes on one connection inside an open database transaction."""

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def insert_request(self, request: AnyRequest) -> AnyRequest:
        params = _request_params(request)
        try:
            row = await self.conn.fetchrow(
                f"""
                INSERT INTO svcreq.requests (
                    request_id, reference_code, kind, requestor_id, department_id, status,
                    pending_approver_ids, returned_to, comments, requestor_signature,
                    verification_status, verifier_id, verifier_comments, verified_at,
                    assigned_vehicle_id, assigned_driver_id, payload, version,
                    created_at, updated_at, submitted_at, completed_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
                        $15, $16, $17::jsonb, $18, $19, $20, $21, $22)
                RETURNING {_REQUEST_COLUMNS}
                """,
                request.request_id,
                request.reference_code,
                request.kind.value,
                request.requestor_id,
                request.department_id,
                params["status"],
                params["pending_approver_ids"],
                params["returned_to"],
                params["comments"],
                params["requestor_signature"],
                params["verification_status"],
                params["verifier_id"],
                params["verifier_comments"],
                params["verified_at"],
                params["assigned_vehicle_id"],
                params["assigned_driver_id"],
                params["payload"],
                request.version,
                request.created_at,
                request.updated_at,
                params["submitted_at"],
                params["completed_at"],
            )
        except asyncpg.UniqueViolationError as e:
            raise VersionConflictError(f"Request {request.reference_code} already exists") from e
        return _row_to_request(row)

    async def save_request(self, request: AnyRequest, expected_version: int) -> AnyRequest:
        params = _request_params(request)
        row = await self.conn.fetchrow(
            f"""
            UPDATE svcreq.requests
            SET status = $3,
                pending_approver_ids = $4,
                returned_to = $5,
                comments = $6,
                requestor_signature = $7,
                verification_status = $8,
                verifier_id = $9,
                verifier_comments = $10,
                verified_at = $11,
                assigned_vehicle_id = $12,
                assigned_driver_id = $13,
                payload = $14::jsonb,
                submitted_at = $15,
                completed_at = $16,
                version = version + 1,
                updated_at = NOW()
            WHERE request_id = $1 AND version = $2
            RETURNING {_REQUEST_COLUMNS}
            """,
            request.request_id,
            expected_version,
            params["status"],
            params["pending_approver_ids"],
            params["returned_to"],
            params["comments"],
            params["requestor_signature"],
            params["verification_status"],
            params["verifier_id"],
            params["verifier_comments"],
            params["verified_at"],
            params["assigned_vehicle_id"],
            params["assigned_driver_id"],
            params["payload"],
            params["submitted_at"],
            params["completed_at"],
        )
        if row is None:
            await self._raise_missing_or_conflict(request.request_id, expected_version)
        return _row_to_request(row)

    async def save_approval(self, approval: Approval) -> None:
        await self.conn.execute(
            """
            INSERT INTO svcreq.approvals
                (approval_id, request_id, stage, approver_id, decision, comments, signature, decided_at, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (request_id, stage) DO UPDATE
            SET approver_id = EXCLUDED.approver_id,
                decision = EXCLUDED.decision,
                comments = EXCLUDED.comments,
                signature = EXCLUDED.signature,
                decided_at = EXCLUDED.decided_at
            """,
            approval.approval_id,
            approval.request_id,
            approval.stage.value,
            approval.approver_id,
            approval.decision.value,
            approval.comments,
            approval.signature,
            approval.decided_at,
            approval.created_at,
        )

    async def delete_request(self, request_id: UUID, expected_version: int) -> None:
        result = await self.conn.execute(
            "DELETE FROM svcreq.requests WHERE request_id = $1 AND version = $2",
            request_id,
            expected_version,
        )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        if result.split()[-1] == "0":
            await self._raise_missing_or_conflict(request_id, expected_version)

    async def _raise_missing_or_conflict(self, request_id: UUID, expected_version: int) -> None:
        current = await self.conn.fetchval("SELECT version FROM svcreq.requests WHERE request_id = $1", request_id)
        if current is None:
            raise NotFoundError(f"Request {request_id} not found", details={"request_id": str(request_id)})
        raise VersionConflictError(
            f"Request {request_id} was modified concurrently",
            details={"expected_version": expected_version, "actual_version": current},
        )


class PostgresEntityStore(EntityStore):
    """EntityStore backed by the svcreq PostgreSQL schema."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresTransaction]:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield PostgresTransaction(conn)

    # ────────────────────────────────────────────────────────────────────────
    # Requests
    # ────────────────────────────────────────────────────────────────────────

    async def get_request(self, request_id: UUID) -> AnyRequest:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_REQUEST_COLUMNS} FROM svcreq.requests WHERE request_id = $1",
                request_id,
            )
        if row is None:
            raise NotFoundError(f"Request {request_id} not found", details={"request_id": str(request_id)})
        return _row_to_request(row)

    async def find_by_reference(self, reference_code: str) -> AnyRequest:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_REQUEST_COLUMNS} FROM svcreq.requests WHERE reference_code = $1",
                reference_code,
            )
        if row is None:
            raise NotFoundError(
                f"Request with reference {reference_code} not found",
                details={"reference_code": reference_code},
            )
        return _row_to_request(row)

    async def list_pending_for(self, user_id: int) -> List[AnyRequest]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_REQUEST_COLUMNS}
                FROM svcreq.requests
                WHERE $1 = ANY(pending_approver_ids)
                ORDER BY created_at
                """,
                user_id,
            )
        return [_row_to_request(row) for row in rows]

    async def list_requests(
        self,
        kind: RequestKind,
        scope: RequestScope,
        filters: RequestFilters,
    ) -> Tuple[List[AnyRequest], int]:
        where = _scope_where(kind, scope)
        _apply_filters(where, filters)
        count_args = list(where.args)
        limit = where.param(filters.limit)
        offset = where.param(filters.offset)

        async with self.pool.acquire() as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM svcreq.requests WHERE {where.sql()}",
                *count_args,
            )
            rows = await conn.fetch(
                f"""
                SELECT {_REQUEST_COLUMNS}
                FROM svcreq.requests
                WHERE {where.sql()}
                ORDER BY {_order_by(filters)}
                LIMIT {limit} OFFSET {offset}
                """,
                *where.args,
            )
        return [_row_to_request(row) for row in rows], total

    async def count_requests(self, kind: RequestKind, scope: RequestScope, group_by: str) -> Dict[str, int]:
        if group_by not in GROUPABLE_COLUMNS:
            raise ValueError(f"Cannot group requests by {group_by}")
        where = _scope_where(kind, scope)
        where.add(f"{group_by} IS NOT NULL")

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {group_by} AS value, COUNT(*) AS count
                FROM svcreq.requests
                WHERE {where.sql()}
                GROUP BY {group_by}
                """,
                *where.args,
            )
        return {row["value"]: row["count"] for row in rows}

    async def list_approvals(self, request_id: UUID) -> List[Approval]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM svcreq.approvals WHERE request_id = $1 ORDER BY created_at",
                request_id,
            )
        return [_row_to_approval(row) for row in rows]

    async def get_approval(self, request_id: UUID, stage: ApprovalStage) -> Optional[Approval]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM svcreq.approvals WHERE request_id = $1 AND stage = $2",
                request_id,
                stage.value,
            )
        return _row_to_approval(row) if row else None

    # ────────────────────────────────────────────────────────────────────────
    # Directory
    # ────────────────────────────────────────────────────────────────────────

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM svcreq.users WHERE user_id = $1", user_id)
        return User.model_validate(dict(row)) if row else None

    async def list_active_users(self, role: UserRole, department_id: Optional[int] = None) -> List[User]:
        query = "SELECT * FROM svcreq.users WHERE is_active AND role = $1"
        args: List[Any] = [role.value]
        if department_id is not None:
            query += " AND department_id = $2"
            args.append(department_id)
        query += " ORDER BY user_id"

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
        return [User.model_validate(dict(row)) for row in rows]

    async def get_department(self, department_id: int) -> Optional[Department]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM svcreq.departments WHERE department_id = $1", department_id)
        return Department.model_validate(dict(row)) if row else None

    async def list_vehicle_steward_department_ids(self) -> List[int]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT department_id
                FROM svcreq.departments
                WHERE is_active AND is_vehicle_steward
                ORDER BY department_id
                """
            )
        ids = [row["department_id"] for row in rows]
        if not ids:
            logger.warning("No vehicle steward department configured")
        return ids

    async def get_vehicle(self, vehicle_id: int) -> Optional[Vehicle]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM svcreq.vehicles WHERE vehicle_id = $1", vehicle_id)
        return Vehicle.model_validate(dict(row)) if row else None

    async def get_driver(self, driver_id: int) -> Optional[Driver]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM svcreq.drivers WHERE driver_id = $1", driver_id)
        return Driver.model_validate(dict(row)) if row else None
