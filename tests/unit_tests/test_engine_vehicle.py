"""Tests for the vehicle request workflow."""

import pytest

from svcreq_api.workflow.enums import ApprovalDecision
from svcreq_api.workflow.enums import ApprovalStage
from svcreq_api.workflow.enums import AuditAction
from svcreq_api.workflow.enums import ReturnTarget
from svcreq_api.workflow.enums import VehicleRequestStatus
from svcreq_api.workflow.enums import VerificationStatus
from svcreq_api.workflow.exceptions import InvalidStateError
from svcreq_api.workflow.exceptions import NotAuthorizedError
from svcreq_api.workflow.exceptions import NotFoundError
from svcreq_api.workflow.exceptions import WorkflowValidationError
from svcreq_api.workflow.models import ItemRequestPayload
from svcreq_api.workflow.orchestrator import WorkflowEngine
from svcreq_api.workflow.orchestrator import never_verify
from tests import consts
from tests.fixtures.workflow_fixtures import actor_for
from tests.fixtures.workflow_fixtures import create_submitted_vehicle
from tests.fixtures.workflow_fixtures import deactivate_user
from tests.fixtures.workflow_fixtures import vehicle_payload


class TestSubmitVehicle:
    """Tests for vehicle submission."""

    @pytest.mark.asyncio
    async def test_create_vehicle_request(self, engine, requestor):
        summary = await engine.create_vehicle_request(requestor, vehicle_payload())

        assert summary.status == VehicleRequestStatus.DRAFT
        assert summary.reference_code.startswith("SVR-")
        assert summary.verification_status == VerificationStatus.NONE

    @pytest.mark.asyncio
    async def test_submit_includes_steward_approvers(self, engine):
        request_id = await create_submitted_vehicle(engine)

        request = await engine.store.get_request(request_id)
        assert request.status == VehicleRequestStatus.SUBMITTED
        assert request.pending_approver_ids == [
            consts.DEPT_APPROVER_ID,
            consts.DEPT_APPROVER_2_ID,
            consts.STEWARD_APPROVER_ID,
        ]

    @pytest.mark.asyncio
    async def test_weekday_trip_skips_verification(self, engine, audit_emitter):
        request_id = await create_submitted_vehicle(engine)

        request = await engine.store.get_request(request_id)
        assert request.verification_status == VerificationStatus.NONE
        assert audit_emitter.last().details["verification_triggered"] is False

    @pytest.mark.asyncio
    async def test_sunday_trip_triggers_verification(self, engine, audit_emitter):
        request_id = await create_submitted_vehicle(engine, travel_window=consts.SUNDAY_TRIP)

        request = await engine.store.get_request(request_id)
        assert request.verification_status == VerificationStatus.PENDING
        assert request.verifier_id is None
        assert request.status == VehicleRequestStatus.SUBMITTED
        assert audit_emitter.last().details["verification_triggered"] is True

    @pytest.mark.asyncio
    async def test_verification_trigger_can_be_disabled(self, store, audit_emitter):
        engine = WorkflowEngine(store, audit_emitter, verification_trigger=never_verify)

        request_id = await create_submitted_vehicle(engine, travel_window=consts.SUNDAY_TRIP)

        request = await engine.store.get_request(request_id)
        assert request.verification_status == VerificationStatus.NONE

    @pytest.mark.asyncio
    async def test_item_payload_rejected_for_vehicle_draft(self, engine, requestor):
        summary = await engine.create_vehicle_request(requestor, vehicle_payload())

        with pytest.raises(WorkflowValidationError):
            await engine.update_draft(summary.request_id, requestor, ItemRequestPayload(reason="x"))


class TestTwoStageChain:
    """Department approval followed by steward completion."""

    @pytest.mark.asyncio
    async def test_department_then_steward(self, engine, dept_approver, steward, audit_emitter):
        request_id = await create_submitted_vehicle(engine)

        approved = await engine.approve(request_id, dept_approver)
        assert approved.status == VehicleRequestStatus.DEPARTMENT_APPROVED
        assert approved.pending_approver_ids == [consts.STEWARD_APPROVER_ID]

        completed = await engine.complete(
            request_id,
            steward,
            assigned_vehicle_id=consts.ACTIVE_VEHICLE_ID,
            assigned_driver_id=consts.ACTIVE_DRIVER_ID,
            comments="Van 1 with driver",
        )
        assert completed.status == VehicleRequestStatus.COMPLETED
        assert completed.pending_approver_ids == []
        assert completed.assigned_vehicle_id == consts.ACTIVE_VEHICLE_ID
        assert completed.assigned_driver_id == consts.ACTIVE_DRIVER_ID

        event = audit_emitter.last()
        assert event.action == AuditAction.APPROVE
        assert event.details["assigned_vehicle_id"] == consts.ACTIVE_VEHICLE_ID
        assert event.details["assigned_driver_id"] == consts.ACTIVE_DRIVER_ID

        approvals = {a.stage: a for a in await engine.store.list_approvals(request_id)}
        assert approvals[ApprovalStage.DEPARTMENT].approver_id == consts.DEPT_APPROVER_ID
        assert approvals[ApprovalStage.STEWARD].approver_id == consts.STEWARD_APPROVER_ID
        assert approvals[ApprovalStage.STEWARD].decision == ApprovalDecision.APPROVED

    @pytest.mark.asyncio
    async def test_steward_declines_at_final_stage(self, engine, dept_approver, steward):
        request_id = await create_submitted_vehicle(engine)
        await engine.approve(request_id, dept_approver)

        declined = await engine.decline(request_id, steward, reason="No vehicles that day")

        assert declined.status == VehicleRequestStatus.DECLINED
        assert declined.pending_approver_ids == []

    @pytest.mark.asyncio
    async def test_department_approver_cannot_complete(self, engine, dept_approver):
        """Completion at the department stage is reserved for steward approvers."""
        request_id = await create_submitted_vehicle(engine)

        with pytest.raises(InvalidStateError):
            await engine.complete(request_id, dept_approver, assigned_vehicle_id=consts.ACTIVE_VEHICLE_ID)


class TestStewardChainCollapse:
    """A steward approver acting on a submitted request completes it in one step."""

    @pytest.mark.asyncio
    async def test_steward_approves_submitted(self, engine, steward):
        request_id = await create_submitted_vehicle(engine)

        completed = await engine.approve(request_id, steward)

        assert completed.status == VehicleRequestStatus.COMPLETED
        assert completed.pending_approver_ids == []
        approvals = await engine.store.list_approvals(request_id)
        assert [(a.stage, a.decision, a.approver_id) for a in approvals] == [
            (ApprovalStage.DEPARTMENT, ApprovalDecision.APPROVED, consts.STEWARD_APPROVER_ID)
        ]

    @pytest.mark.asyncio
    async def test_steward_completes_submitted_with_resources(self, engine, steward):
        request_id = await create_submitted_vehicle(engine)

        completed = await engine.complete(
            request_id,
            steward,
            assigned_vehicle_id=consts.ACTIVE_VEHICLE_ID,
            assigned_driver_id=consts.ACTIVE_DRIVER_ID,
        )

        assert completed.status == VehicleRequestStatus.COMPLETED
        assert completed.assigned_vehicle_id == consts.ACTIVE_VEHICLE_ID

    @pytest.mark.asyncio
    async def test_steward_department_requestor_collapse(self, engine, steward):
        """A steward department's own requests need a single approval."""
        request_id = await create_submitted_vehicle(engine, requestor_id=consts.ODHC_REQUESTOR_ID)
        request = await engine.store.get_request(request_id)
        assert request.pending_approver_ids == [consts.STEWARD_APPROVER_ID]

        completed = await engine.approve(request_id, steward)

        assert completed.status == VehicleRequestStatus.COMPLETED


class TestCompletionResources:
    """Vehicle and driver checks on completion."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "vehicle_id,driver_id,error",
        [
            (999, None, NotFoundError),
            (None, 999, NotFoundError),
            (consts.INACTIVE_VEHICLE_ID, None, WorkflowValidationError),
            (None, consts.INACTIVE_DRIVER_ID, WorkflowValidationError),
        ],
        ids=["unknown-vehicle", "unknown-driver", "inactive-vehicle", "inactive-driver"],
    )
    async def test_bad_resources_rejected(self, engine, dept_approver, steward, store, vehicle_id, driver_id, error):
        request_id = await create_submitted_vehicle(engine)
        await engine.approve(request_id, dept_approver)
        before = store.snapshot()

        with pytest.raises(error):
            await engine.complete(request_id, steward, assigned_vehicle_id=vehicle_id, assigned_driver_id=driver_id)

        assert store.snapshot() == before
        request = await engine.store.get_request(request_id)
        assert request.status == VehicleRequestStatus.DEPARTMENT_APPROVED
        assert request.assigned_vehicle_id is None


class TestVehicleReturn:
    """Returns on vehicle requests."""

    @pytest.mark.asyncio
    async def test_return_to_requestor(self, engine, dept_approver, requestor):
        request_id = await create_submitted_vehicle(engine)

        returned = await engine.return_request(request_id, dept_approver, reason="Wrong date")

        assert returned.status == VehicleRequestStatus.RETURNED
        assert returned.pending_approver_ids == [consts.REQUESTOR_ID]

        resubmitted = await engine.submit(request_id, requestor)
        assert resubmitted.status == VehicleRequestStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_return_to_department_not_allowed(self, engine, dept_approver, steward):
        request_id = await create_submitted_vehicle(engine)
        await engine.approve(request_id, dept_approver)

        with pytest.raises(WorkflowValidationError):
            await engine.return_request(
                request_id, steward, reason="Ask department", return_to=ReturnTarget.DEPARTMENT_APPROVER
            )

    @pytest.mark.asyncio
    async def test_resubmit_keeps_completed_verification(self, engine, dept_approver, requestor, verification_flow, steward):
        """Verification is only triggered when it has not started yet."""
        request_id = await create_submitted_vehicle(engine, travel_window=consts.SUNDAY_TRIP)
        await verification_flow.assign_verifier(request_id, steward, consts.VERIFIER_ID)
        await verification_flow.verify(request_id, actor_for(consts.VERIFIER_ID), "verified")
        await engine.return_request(request_id, dept_approver, reason="Add passengers")

        await engine.submit(request_id, requestor)

        request = await engine.store.get_request(request_id)
        assert request.verification_status == VerificationStatus.VERIFIED


class TestVehicleGuards:
    """Authorization checks specific to vehicle requests."""

    @pytest.mark.asyncio
    async def test_it_manager_not_involved(self, engine, it_manager):
        request_id = await create_submitted_vehicle(engine)

        with pytest.raises(NotAuthorizedError):
            await engine.approve(request_id, it_manager)

    @pytest.mark.asyncio
    async def test_steward_deletes_completed(self, engine, steward, store):
        request_id = await create_submitted_vehicle(engine)
        await engine.approve(request_id, steward)

        await engine.delete(request_id, steward)

        assert store.snapshot() == (0, 0)


class TestVehicleVisibility:
    """Who may read a vehicle request."""

    @pytest.mark.asyncio
    async def test_steward_reads_other_department_request(self, engine, steward):
        request_id = await create_submitted_vehicle(engine)

        request = await engine.get_request(request_id, steward)

        assert request.department_id == consts.FINANCE_DEPT

    @pytest.mark.asyncio
    async def test_steward_cannot_read_vehicle_draft(self, engine, requestor, steward):
        summary = await engine.create_vehicle_request(requestor, vehicle_payload())

        with pytest.raises(NotAuthorizedError):
            await engine.get_request(summary.request_id, steward)

    @pytest.mark.asyncio
    async def test_assigned_verifier_reads_request(self, engine, verification_flow, steward, verifier):
        request_id = await create_submitted_vehicle(engine, travel_window=consts.SUNDAY_TRIP)

        with pytest.raises(NotAuthorizedError):
            await engine.get_request(request_id, verifier)

        await verification_flow.assign_verifier(request_id, steward, consts.VERIFIER_ID)
        request = await engine.get_request(request_id, verifier)
        approvals = await engine.list_approvals(request_id, verifier)

        assert request.verifier_id == consts.VERIFIER_ID
        assert ApprovalStage.VERIFICATION in [a.stage for a in approvals]

    @pytest.mark.asyncio
    async def test_submit_without_any_approver_is_rejected(self, engine, store):
        for user_id in (consts.STEWARD_APPROVER_ID, consts.SUPER_ADMIN_ID):
            deactivate_user(store, user_id)
        actor = actor_for(consts.UNSTAFFED_REQUESTOR_ID)
        summary = await engine.create_vehicle_request(actor, vehicle_payload())

        with pytest.raises(InvalidStateError):
            await engine.submit(summary.request_id, actor)

        request = await engine.store.get_request(summary.request_id)
        assert request.status == VehicleRequestStatus.DRAFT
        assert request.pending_approver_ids == []
