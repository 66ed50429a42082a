"""Unit tests for errors.py error handlers."""

import json
from unittest.mock import MagicMock
from unittest.mock import patch
from uuid import uuid4

import pydantic
import pytest
from fastapi import Request

from svcreq_api.errors import handle_broad_exceptions
from svcreq_api.errors import handle_pydantic_validation_errors
from svcreq_api.errors import handle_workflow_errors
from svcreq_api.workflow.exceptions import InvalidStateError
from svcreq_api.workflow.exceptions import NotAuthorizedError
from svcreq_api.workflow.exceptions import NotFoundError
from svcreq_api.workflow.exceptions import NotOwnerError
from svcreq_api.workflow.exceptions import VersionConflictError
from svcreq_api.workflow.exceptions import WorkflowError
from svcreq_api.workflow.exceptions import WorkflowValidationError


def mock_request() -> MagicMock:
    request = MagicMock(spec=Request)
    request.method = "POST"
    request.url.path = "/api/requests/123/approve"
    request.state.request_body = None  # Avoid MagicMock in json.dumps
    return request


class TestHandleBroadExceptions:
    """Tests for handle_broad_exceptions middleware."""

    @pytest.mark.asyncio
    @patch("svcreq_api.errors.log_response_info")
    async def test_successful_request(self, mock_log):
        """Test middleware passes through successful requests."""
        mock_response = MagicMock()

        async def mock_call_next(request):
            return mock_response

        result = await handle_broad_exceptions(mock_request(), mock_call_next)

        assert result == mock_response
        mock_log.assert_not_called()

    @pytest.mark.asyncio
    @patch("svcreq_api.errors.log_response_info")
    async def test_exception_returns_500(self, mock_log):
        """Test middleware catches exceptions and returns 500."""

        async def mock_call_next(request):
            raise ValueError("Test error {with braces}")

        result = await handle_broad_exceptions(mock_request(), mock_call_next)

        assert result.status_code == 500
        content = json.loads(result.body)
        assert content == {"detail": "Internal server error", "error_type": "ValueError"}
        mock_log.assert_called_once()


class TestHandlePydanticValidationErrors:
    """Tests for handle_pydantic_validation_errors handler."""

    @pytest.mark.asyncio
    @patch("svcreq_api.errors.log_response_info")
    async def test_validation_error(self, mock_log):
        """Test handling pydantic validation errors."""

        class TestModel(pydantic.BaseModel):
            name: str
            value: int

        with pytest.raises(pydantic.ValidationError) as exc_info:
            TestModel(name=123, value="not_int")

        result = await handle_pydantic_validation_errors(mock_request(), exc_info.value)

        assert result.status_code == 422
        assert len(json.loads(result.body)["detail"]) == 2
        mock_log.assert_called_once()


class TestHandleWorkflowErrors:
    """Tests for handle_workflow_errors handler."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc,expected_status,retryable",
        [
            (NotFoundError("Request not found"), 404, False),
            (NotOwnerError("Only the requestor can edit"), 403, False),
            (NotAuthorizedError("Not a pending approver"), 403, False),
            (InvalidStateError("Cannot approve a completed request"), 409, False),
            (VersionConflictError("Modified concurrently"), 409, True),
            (WorkflowValidationError("Reason is required"), 400, False),
            (WorkflowError("Something else"), 400, False),
        ],
        ids=["not_found", "not_owner", "not_authorized", "invalid_state", "version_conflict", "validation", "base"],
    )
    @patch("svcreq_api.errors.log_response_info")
    async def test_error_mapping(self, mock_log, exc, expected_status: int, retryable: bool):
        """Test workflow errors are mapped to correct HTTP status codes."""
        result = await handle_workflow_errors(mock_request(), exc)

        assert result.status_code == expected_status
        content = json.loads(result.body)
        assert content["detail"] == exc.message
        assert content["error_type"] == type(exc).__name__
        assert content["retryable"] is retryable
        mock_log.assert_called_once()

    @pytest.mark.asyncio
    @patch("svcreq_api.errors.log_response_info")
    async def test_details_are_json_safe(self, mock_log):
        """UUIDs in error context are serialized."""
        request_id = uuid4()
        exc = NotFoundError("Request not found", details={"request_id": request_id})

        result = await handle_workflow_errors(mock_request(), exc)

        assert json.loads(result.body)["context"] == {"request_id": str(request_id)}
