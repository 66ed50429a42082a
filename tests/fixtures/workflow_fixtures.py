"""Fixtures for the workflow engine: seeded in-memory store, actors and audit capture."""

from typing import List
from typing import Optional
from typing import Tuple
from uuid import UUID

import pytest

from svcreq_api.workflow.audit import AuditEmitter
from svcreq_api.workflow.db.memory_store import InMemoryEntityStore
from svcreq_api.workflow.enums import AuditAction
from svcreq_api.workflow.enums import UserRole
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.models import AuditEvent
from svcreq_api.workflow.models import Department
from svcreq_api.workflow.models import Driver
from svcreq_api.workflow.models import ItemRequestPayload
from svcreq_api.workflow.models import RequestItem
from svcreq_api.workflow.models import TripDetails
from svcreq_api.workflow.models import User
from svcreq_api.workflow.models import Vehicle
from svcreq_api.workflow.models import VehicleRequestPayload
from svcreq_api.workflow.orchestrator import VerificationFlow
from svcreq_api.workflow.orchestrator import WorkflowEngine
from tests import consts


class RecordingAuditEmitter(AuditEmitter):
    """Keeps emitted events in memory."""

    def __init__(self):
        self.events: List[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> List[AuditAction]:
        return [event.action for event in self.events]

    def last(self) -> AuditEvent:
        return self.events[-1]


class FailingAuditEmitter(AuditEmitter):
    """Audit sink that is always down."""

    async def emit(self, event: AuditEvent) -> None:
        raise ConnectionError("audit sink unavailable")


SEED_USERS: List[Tuple[int, str, UserRole, Optional[int], bool]] = [
    (consts.REQUESTOR_ID, "requestor", UserRole.REQUESTOR, consts.FINANCE_DEPT, True),
    (consts.OTHER_REQUESTOR_ID, "other.requestor", UserRole.REQUESTOR, consts.FINANCE_DEPT, True),
    (consts.DEPT_APPROVER_ID, "dept.approver", UserRole.DEPARTMENT_APPROVER, consts.FINANCE_DEPT, True),
    (consts.DEPT_APPROVER_2_ID, "dept.approver2", UserRole.DEPARTMENT_APPROVER, consts.FINANCE_DEPT, True),
    (consts.INACTIVE_DEPT_APPROVER_ID, "dept.inactive", UserRole.DEPARTMENT_APPROVER, consts.FINANCE_DEPT, False),
    (consts.IT_MANAGER_ID, "it.manager", UserRole.IT_MANAGER, consts.IT_DEPT, True),
    (consts.SERVICE_DESK_ID, "service.desk", UserRole.SERVICE_DESK, consts.IT_DEPT, True),
    (consts.STEWARD_APPROVER_ID, "odhc.approver", UserRole.DEPARTMENT_APPROVER, consts.ODHC_DEPT, True),
    (consts.ODHC_REQUESTOR_ID, "odhc.requestor", UserRole.REQUESTOR, consts.ODHC_DEPT, True),
    (consts.SUPER_ADMIN_ID, "super.admin", UserRole.SUPER_ADMINISTRATOR, None, True),
    (consts.UNSTAFFED_REQUESTOR_ID, "unstaffed.requestor", UserRole.REQUESTOR, consts.UNSTAFFED_DEPT, True),
    (consts.VERIFIER_ID, "verifier", UserRole.REQUESTOR, consts.ODHC_DEPT, True),
    (consts.INACTIVE_VERIFIER_ID, "verifier.inactive", UserRole.REQUESTOR, consts.ODHC_DEPT, False),
]


def build_seeded_store() -> InMemoryEntityStore:
    """In-memory store with departments, one user per role and a small fleet."""
    store = InMemoryEntityStore()
    store.add_department(Department(department_id=consts.FINANCE_DEPT, name="Finance"))
    store.add_department(Department(department_id=consts.IT_DEPT, name="IT"))
    store.add_department(Department(department_id=consts.ODHC_DEPT, name="ODHC", is_vehicle_steward=True))
    store.add_department(Department(department_id=consts.UNSTAFFED_DEPT, name="Records"))

    for user_id, username, role, department_id, is_active in SEED_USERS:
        store.add_user(
            User(
                user_id=user_id,
                username=username,
                email=f"{username}@example.org",
                role=role,
                department_id=department_id,
                is_active=is_active,
            )
        )

    store.add_vehicle(Vehicle(vehicle_id=consts.ACTIVE_VEHICLE_ID, plate_number="ABC-1234"))
    store.add_vehicle(Vehicle(vehicle_id=consts.INACTIVE_VEHICLE_ID, plate_number="XYZ-9876", is_active=False))
    store.add_driver(Driver(driver_id=consts.ACTIVE_DRIVER_ID, name="Juan Dela Cruz"))
    store.add_driver(Driver(driver_id=consts.INACTIVE_DRIVER_ID, name="Retired Driver", is_active=False))
    return store


def actor_for(user_id: int) -> ActorContext:
    """ActorContext matching a seeded user."""
    for seeded_id, _, role, department_id, _ in SEED_USERS:
        if seeded_id == user_id:
            return ActorContext(user_id=user_id, role=role, department_id=department_id)
    raise KeyError(user_id)


def deactivate_user(store: InMemoryEntityStore, user_id: int) -> None:
    """Replace a seeded user with an inactive copy."""
    for seeded_id, username, role, department_id, _ in SEED_USERS:
        if seeded_id == user_id:
            store.add_user(
                User(
                    user_id=user_id,
                    username=username,
                    email=f"{username}@example.org",
                    role=role,
                    department_id=department_id,
                    is_active=False,
                )
            )
            return
    raise KeyError(user_id)


def item_payload(**overrides) -> ItemRequestPayload:
    fields = {
        "items": [
            RequestItem(category="Laptop", item_description="14in developer laptop", quantity=1),
            RequestItem(category="Peripheral", item_description="USB-C dock", quantity=2),
        ],
        "reason": "New hire onboarding",
        "user_name": "New Hire",
        "user_position": "Analyst",
    }
    fields.update(overrides)
    return ItemRequestPayload(**fields)


def vehicle_payload(travel_window=consts.WEEKDAY_TRIP, **overrides) -> VehicleRequestPayload:
    travel_from, travel_to = travel_window
    trip = TripDetails(
        travel_date_from=travel_from,
        travel_date_to=travel_to,
        pick_up_time="08:30",
        pick_up_location="Head office",
        destination="Regional office",
        purpose="Site inspection",
        passengers=["A. Santos", "B. Reyes"],
    )
    return VehicleRequestPayload(trip=trip, **overrides)


async def create_submitted_item(engine: WorkflowEngine, requestor_id: int = consts.REQUESTOR_ID) -> UUID:
    """Create and submit an item request; returns its id."""
    actor = actor_for(requestor_id)
    summary = await engine.create_item_request(actor, item_payload())
    await engine.submit(summary.request_id, actor)
    return summary.request_id


async def create_department_approved_item(engine: WorkflowEngine) -> UUID:
    request_id = await create_submitted_item(engine)
    await engine.approve(request_id, actor_for(consts.DEPT_APPROVER_ID))
    return request_id


async def create_submitted_vehicle(
    engine: WorkflowEngine,
    requestor_id: int = consts.REQUESTOR_ID,
    travel_window=consts.WEEKDAY_TRIP,
) -> UUID:
    """Create and submit a vehicle request; returns its id."""
    actor = actor_for(requestor_id)
    summary = await engine.create_vehicle_request(actor, vehicle_payload(travel_window))
    await engine.submit(summary.request_id, actor)
    return summary.request_id


@pytest.fixture
def store() -> InMemoryEntityStore:
    """Seeded in-memory entity store."""
    return build_seeded_store()


@pytest.fixture
def audit_emitter() -> RecordingAuditEmitter:
    return RecordingAuditEmitter()


@pytest.fixture
def engine(store, audit_emitter) -> WorkflowEngine:
    """Workflow engine with the default Sunday verification trigger."""
    return WorkflowEngine(store, audit_emitter)


@pytest.fixture
def verification_flow(store, audit_emitter) -> VerificationFlow:
    return VerificationFlow(store, audit_emitter)


@pytest.fixture
def requestor() -> ActorContext:
    return actor_for(consts.REQUESTOR_ID)


@pytest.fixture
def dept_approver() -> ActorContext:
    return actor_for(consts.DEPT_APPROVER_ID)


@pytest.fixture
def it_manager() -> ActorContext:
    return actor_for(consts.IT_MANAGER_ID)


@pytest.fixture
def service_desk() -> ActorContext:
    return actor_for(consts.SERVICE_DESK_ID)


@pytest.fixture
def steward() -> ActorContext:
    return actor_for(consts.STEWARD_APPROVER_ID)


@pytest.fixture
def super_admin() -> ActorContext:
    return actor_for(consts.SUPER_ADMIN_ID)


@pytest.fixture
def verifier() -> ActorContext:
    return actor_for(consts.VERIFIER_ID)
