"""Unit tests for dependencies.py."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from svcreq_api.dependencies import get_actor
from svcreq_api.dependencies import get_engine
from svcreq_api.dependencies import get_settings
from svcreq_api.dependencies import get_verification_flow
from svcreq_api.workflow.enums import UserRole


def mock_request(**state) -> MagicMock:
    request = MagicMock()
    request.app.state = SimpleNamespace(**state)
    return request


class TestGetActor:
    """Tests for get_actor."""

    @pytest.mark.asyncio
    async def test_builds_actor_context(self):
        actor = await get_actor(x_user_id="110", x_user_role="department_approver", x_department_id="1")

        assert actor.user_id == 110
        assert actor.role == UserRole.DEPARTMENT_APPROVER
        assert actor.department_id == 1

    @pytest.mark.asyncio
    async def test_role_is_case_insensitive(self):
        actor = await get_actor(x_user_id="150", x_user_role=" Super_Administrator ", x_department_id=None)

        assert actor.role == UserRole.SUPER_ADMINISTRATOR
        assert actor.department_id is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_id,role",
        [(None, "requestor"), ("100", None), ("", "requestor")],
        ids=["no_user", "no_role", "empty_user"],
    )
    async def test_missing_identity(self, user_id, role):
        with pytest.raises(HTTPException) as exc_info:
            await get_actor(x_user_id=user_id, x_user_role=role, x_department_id=None)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user_id,role,department_id",
        [("abc", "requestor", None), ("100", "requestor", "finance"), ("100", "janitor", None)],
        ids=["bad_user_id", "bad_department_id", "unknown_role"],
    )
    async def test_malformed_identity(self, user_id, role, department_id):
        with pytest.raises(HTTPException) as exc_info:
            await get_actor(x_user_id=user_id, x_user_role=role, x_department_id=department_id)

        assert exc_info.value.status_code == 400


class TestAppStateDependencies:
    """Tests for app state accessors."""

    def test_get_settings(self):
        settings = MagicMock()

        assert get_settings(mock_request(settings=settings)) is settings

    def test_get_engine(self):
        engine = MagicMock()

        assert get_engine(mock_request(engine=engine)) is engine

    @pytest.mark.parametrize(
        "dependency,state_key",
        [(get_engine, "engine"), (get_verification_flow, "verification_flow")],
        ids=["engine", "verification_flow"],
    )
    def test_not_initialized(self, dependency, state_key):
        with pytest.raises(HTTPException) as exc_info:
            dependency(mock_request(**{state_key: None}))

        assert exc_info.value.status_code == 503
