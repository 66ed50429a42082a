"""
Workflow Orchestrator Module

Approval state machine for item and vehicle requests: transition table,
pending-approver resolution, the engine and the verification lane.
"""

from svcreq_api.workflow.orchestrator.engine import WorkflowEngine
from svcreq_api.workflow.orchestrator.resolver import PendingApproverResolver
from svcreq_api.workflow.orchestrator.resolver import resolve_capabilities
from svcreq_api.workflow.orchestrator.verification import VerificationFlow
from svcreq_api.workflow.orchestrator.verification import never_verify
from svcreq_api.workflow.orchestrator.verification import travel_includes_sunday

__all__ = [
    "WorkflowEngine",
    "PendingApproverResolver",
    "resolve_capabilities",
    "VerificationFlow",
    "travel_includes_sunday",
    "never_verify",
]
