"""
Audit Emitters

Sinks for the structured change events the workflow engine emits after commit.

Audit emission never fails a workflow operation: emitters log their own errors
and return. Use `emit_safely` at call sites that must not raise.
"""

from abc import ABC
from abc import abstractmethod
from typing import Iterable
from typing import List

from loguru import logger

from svcreq_api.workflow.db.repository_audit import AuditTrailRepository
from svcreq_api.workflow.models import AuditEvent


class AuditEmitter(ABC):
    """Receives AuditEvents."""

    @abstractmethod
    async def emit(self, event: AuditEvent) -> None:
        pass


class LoguruAuditEmitter(AuditEmitter):
    """Writes each event as a structured log record."""

    async def emit(self, event: AuditEvent) -> None:
        logger.bind(audit=True).info(
            f"AUDIT {event.action.value} {event.entity_type} {event.entity_id}",
            actor_id=event.actor_id,
            action=event.action.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            details=event.details,
        )


class RepositoryAuditEmitter(AuditEmitter):
    """Appends each event to the audit_trail table."""

    def __init__(self, repository: AuditTrailRepository):
        self.repository = repository

    async def emit(self, event: AuditEvent) -> None:
        audit_id = await self.repository.create(event)
        logger.debug("Audit event persisted", audit_id=str(audit_id), action=event.action.value)


class CompositeAuditEmitter(AuditEmitter):
    """Fans an event out to several emitters; one failing does not stop the rest."""

    def __init__(self, emitters: Iterable[AuditEmitter]):
        self.emitters: List[AuditEmitter] = list(emitters)

    async def emit(self, event: AuditEvent) -> None:
        for emitter in self.emitters:
            await emit_safely(emitter, event)


async def emit_safely(emitter: AuditEmitter, event: AuditEvent) -> None:
    """Emit an event, logging (not raising) any sink failure."""
    try:
        await emitter.emit(event)
    except Exception as e:
        logger.opt(exception=True).error(
            "Failed to write audit event: {error}",
            error=str(e),
            action=event.action.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
        )
