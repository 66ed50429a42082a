"""Tests for audit emitters and the audit trail repository."""

import json
from unittest.mock import AsyncMock
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from svcreq_api.workflow.audit import CompositeAuditEmitter
from svcreq_api.workflow.audit import LoguruAuditEmitter
from svcreq_api.workflow.audit import RepositoryAuditEmitter
from svcreq_api.workflow.audit import emit_safely
from svcreq_api.workflow.db.repository_audit import AuditTrailRepository
from svcreq_api.workflow.enums import AuditAction
from svcreq_api.workflow.models import AuditEvent
from tests.fixtures.workflow_fixtures import FailingAuditEmitter
from tests.fixtures.workflow_fixtures import RecordingAuditEmitter


def make_event(**details) -> AuditEvent:
    return AuditEvent(
        actor_id=110,
        action=AuditAction.APPROVE,
        entity_type="item_request",
        entity_id=str(uuid4()),
        details={"status_before": "submitted", "status_after": "department_approved", **details},
    )


def mock_pool(conn):
    """asyncpg pool whose acquire() yields the given connection."""
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    return pool


class TestLoguruAuditEmitter:
    """Tests for LoguruAuditEmitter."""

    @pytest.mark.asyncio
    async def test_writes_structured_record(self, log_records):
        event = make_event()

        await LoguruAuditEmitter().emit(event)

        record = next(r for r in log_records if r["message"].startswith("AUDIT"))
        assert record["message"] == f"AUDIT APPROVE item_request {event.entity_id}"
        assert record["level"].name == "INFO"


class TestCompositeAuditEmitter:
    """Tests for CompositeAuditEmitter."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_sinks(self, log_records):
        recorder = RecordingAuditEmitter()
        composite = CompositeAuditEmitter([FailingAuditEmitter(), recorder])
        event = make_event()

        await composite.emit(event)

        assert recorder.events == [event]
        assert any(
            r["level"].name == "ERROR" and "Failed to write audit event" in r["message"] for r in log_records
        )


class TestEmitSafely:
    """Tests for emit_safely."""

    @pytest.mark.asyncio
    async def test_swallows_sink_errors(self):
        await emit_safely(FailingAuditEmitter(), make_event())

    @pytest.mark.asyncio
    async def test_message_with_braces_in_error(self, log_records):
        """Error text is passed as a field, so braces in it do not break formatting."""
        emitter = MagicMock()
        emitter.emit = AsyncMock(side_effect=ValueError("bad payload {oops}"))

        await emit_safely(emitter, make_event())

        assert any("bad payload {oops}" in r["message"] for r in log_records)


class TestRepositoryAuditEmitter:
    """Tests for RepositoryAuditEmitter and AuditTrailRepository."""

    @pytest.mark.asyncio
    async def test_emitter_delegates_to_repository(self):
        repository = MagicMock()
        repository.create = AsyncMock(return_value=uuid4())
        event = make_event()

        await RepositoryAuditEmitter(repository).emit(event)

        repository.create.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_repository_insert(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="INSERT 0 1")
        repository = AuditTrailRepository(mock_pool(conn))
        event = make_event(notify_user_ids=[100, 120])

        audit_id = await repository.create(event)

        sql, *params = conn.execute.await_args.args
        assert "INSERT INTO svcreq.audit_trail" in sql
        assert params[0] == audit_id
        assert params[1] == "item_request"
        assert params[2] == event.entity_id
        assert params[3] == "APPROVE"
        assert params[4] == 110
        assert json.loads(params[5])["notify_user_ids"] == [100, 120]

    @pytest.mark.asyncio
    async def test_repository_history_decodes_details(self):
        conn = MagicMock()
        entity_id = str(uuid4())
        conn.fetch = AsyncMock(
            return_value=[
                {"action": "SUBMIT", "entity_id": entity_id, "details": json.dumps({"status_after": "submitted"})},
                {"action": "DELETE", "entity_id": entity_id, "details": None},
            ]
        )
        repository = AuditTrailRepository(mock_pool(conn))

        history = await repository.list_for_entity("item_request", entity_id)

        assert [entry["action"] for entry in history] == ["SUBMIT", "DELETE"]
        assert history[0]["details"] == {"status_after": "submitted"}
        assert history[1]["details"] is None
        assert conn.fetch.await_args.args[1:] == ("item_request", entity_id)
