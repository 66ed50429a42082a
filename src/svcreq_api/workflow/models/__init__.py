"""
Workflow Models Module

All Pydantic models for the workflow system:
- Request models (item and vehicle) and draft payloads
- Approval decisions
- Directory entities consumed by the workflow (users, departments, fleet)
- Listing scope, filters and stats
- Audit events
"""

from svcreq_api.workflow.models.approval import Approval
from svcreq_api.workflow.models.audit import AuditEvent
from svcreq_api.workflow.models.directory import ActorContext
from svcreq_api.workflow.models.directory import Department
from svcreq_api.workflow.models.directory import Driver
from svcreq_api.workflow.models.directory import User
from svcreq_api.workflow.models.directory import Vehicle
from svcreq_api.workflow.models.query import RequestFilters
from svcreq_api.workflow.models.query import RequestPage
from svcreq_api.workflow.models.query import RequestScope
from svcreq_api.workflow.models.query import RequestStats
from svcreq_api.workflow.models.request import AnyRequest
from svcreq_api.workflow.models.request import ItemRequest
from svcreq_api.workflow.models.request import ItemRequestPayload
from svcreq_api.workflow.models.request import RequestItem
from svcreq_api.workflow.models.request import RequestSummary
from svcreq_api.workflow.models.request import TripDetails
from svcreq_api.workflow.models.request import VehicleRequest
from svcreq_api.workflow.models.request import VehicleRequestPayload
from svcreq_api.workflow.models.request import WorkflowRequest
from svcreq_api.workflow.models.request import request_from_record

__all__ = [
    # Requests
    "WorkflowRequest",
    "ItemRequest",
    "VehicleRequest",
    "AnyRequest",
    "RequestItem",
    "TripDetails",
    "ItemRequestPayload",
    "VehicleRequestPayload",
    "RequestSummary",
    "request_from_record",
    # Listings
    "RequestScope",
    "RequestFilters",
    "RequestPage",
    "RequestStats",
    # Approvals
    "Approval",
    # Directory
    "ActorContext",
    "User",
    "Department",
    "Vehicle",
    "Driver",
    # Audit
    "AuditEvent",
]
