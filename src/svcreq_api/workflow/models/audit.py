"""
Audit Event Model

Structured change event emitted by the workflow engine to the audit sink.
"""

from datetime import datetime
from typing import Any
from typing import Dict
from typing import Optional

from pydantic import BaseModel
from pydantic import Field

from svcreq_api.workflow.enums import AuditAction
from svcreq_api.workflow.models.request import utc_now


class AuditEvent(BaseModel):
    """Audit event: {actor, action, entityType, entityId, timestamp, details}."""

    actor_id: Optional[int]  # None for system actions
    action: AuditAction
    entity_type: str
    entity_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    details: Dict[str, Any] = Field(default_factory=dict)
