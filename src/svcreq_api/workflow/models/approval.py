"""
Approval Model

Database model for per-stage approval decisions (child of a request).
"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from uuid import uuid4

from pydantic import BaseModel
from pydantic import Field

from svcreq_api.workflow.enums import ApprovalDecision
from svcreq_api.workflow.enums import ApprovalStage
from svcreq_api.workflow.models.request import utc_now


class Approval(BaseModel):
    """One approval-stage decision for a request."""

    approval_id: UUID = Field(default_factory=uuid4)
    request_id: UUID
    stage: ApprovalStage
    approver_id: Optional[int] = None  # Set when decided (or when a verifier is assigned)
    decision: ApprovalDecision = ApprovalDecision.PENDING
    comments: Optional[str] = None
    signature: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True

    @property
    def is_pending(self) -> bool:
        return self.decision == ApprovalDecision.PENDING

    def decide(
        self,
        decision: ApprovalDecision,
        approver_id: int,
        comments: Optional[str] = None,
        signature: Optional[str] = None,
    ) -> "Approval":
        """Return a decided copy of this pending approval."""
        return self.model_copy(
            update={
                "decision": decision,
                "approver_id": approver_id,
                "comments": comments,
                "signature": signature,
                "decided_at": utc_now(),
            }
        )

    def reopen(self, approver_id: Optional[int] = None) -> "Approval":
        """Return a copy reset to pending (request re-entered this stage)."""
        return self.model_copy(
            update={
                "decision": ApprovalDecision.PENDING,
                "approver_id": approver_id,
                "comments": None,
                "signature": None,
                "decided_at": None,
            }
        )
