"""
Audit Trail Repository

Repository for audit trail operations (append-only table).
"""

import json
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from uuid import UUID
from uuid import uuid4

import asyncpg

from svcreq_api.workflow.models import AuditEvent


class AuditTrailRepository:
    """Audit trail repository (append-only)."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(self, event: AuditEvent) -> UUID:
        """Create an audit trail entry."""
        audit_id = uuid4()

        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO svcreq.audit_trail
                    (audit_id, entity_type, entity_id, action, actor_id, details, timestamp)
                VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7)
                """,
                audit_id,
                event.entity_type,
                event.entity_id,
                event.action.value,
                event.actor_id,
                json.dumps(event.details, default=str) if event.details else None,
                event.timestamp,
            )

        return audit_id

    async def list_for_entity(self, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
        """Audit history of one entity, oldest first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT audit_id, entity_type, entity_id, action, actor_id, details, timestamp
                FROM svcreq.audit_trail
                WHERE entity_type = $1 AND entity_id = $2
                ORDER BY timestamp
                """,
                entity_type,
                entity_id,
            )

        history = []
        for row in rows:
            entry = dict(row)
            details: Optional[Any] = entry.get("details")
            if isinstance(details, str):
                entry["details"] = json.loads(details)
            history.append(entry)
        return history
