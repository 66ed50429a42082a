"""Test suite for logger configuration and request context middleware."""

import json
import sys

import pytest
from fastapi import FastAPI
from fastapi import Request
from fastapi.testclient import TestClient
from loguru import logger

from svcreq_api.monitoring.logger import configure_logger
from svcreq_api.monitoring.logger import get_formatted_stacktrace
from svcreq_api.monitoring.logger import process_log_record
from svcreq_api.monitoring.request_context import MAX_BODY_LOG_SIZE
from svcreq_api.monitoring.request_context import RequestContextMiddleware
from svcreq_api.monitoring.request_context import get_request_context


@pytest.fixture
def restore_logger():
    """Drop handlers added by configure_logger after the test."""
    yield
    logger.remove()


@pytest.fixture
def context_client():
    """Minimal app that echoes what the middleware captured."""
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.post("/echo")
    async def echo(request: Request):
        return {"body": request.state.request_body, "context": get_request_context()}

    with TestClient(app) as client:
        yield client


class TestProcessLogRecord:
    """Tests for process_log_record."""

    def test_extra_serialized_to_json(self):
        record = {"extra": {"request_id": "abc", "count": 2}, "exception": None}

        result = process_log_record(record)

        assert json.loads(result["extra"]) == {"request_id": "abc", "count": 2}
        assert result["stacktrace"] == ""

    def test_empty_extra_left_alone(self):
        record = {"extra": {}, "exception": None}

        assert process_log_record(record)["extra"] == {}

    def test_stacktrace_on_single_line(self):
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        record = {"extra": {}, "exception": exc_info}
        result = process_log_record(record)

        assert "ValueError: boom" in result["stacktrace"]
        assert "\n" not in result["stacktrace"]

    def test_formatted_stacktrace_keeps_newlines(self):
        try:
            raise KeyError("missing")
        except KeyError:
            exc_info = sys.exc_info()

        stacktrace = get_formatted_stacktrace(exc_info, replace_newline_character_with_carriage_return=False)

        assert stacktrace.startswith("Traceback")
        assert "\n" in stacktrace


class TestConfigureLogger:
    """Tests for configure_logger."""

    def test_file_sink_writes_json_lines(self, tmp_path, restore_logger):
        log_file = tmp_path / "svcreq.log"

        configure_logger(log_level="INFO", log_file=str(log_file), log_serialize=True)
        logger.info("Request approved", request_id="r-1")
        logger.debug("Not written below INFO")
        logger.complete()

        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        messages = [line["record"]["message"] for line in lines]
        assert "Request approved" in messages
        assert "Not written below INFO" not in messages

    def test_stdout_only(self, capsys, restore_logger):
        configure_logger(log_level="WARNING")
        logger.info("quiet")
        logger.warning("Pending set empty", request_id="r-2")

        out = capsys.readouterr().out
        assert "quiet" not in out
        assert "Pending set empty" in out
        assert '"request_id": "r-2"' in out


class TestRequestContextMiddleware:
    """Tests for RequestContextMiddleware."""

    def test_signatures_redacted(self, context_client):
        response = context_client.post(
            "/echo",
            json={"reason": "Over budget", "signature": "data:image/png;base64,AAAA", "requestor_signature": None},
        )

        body = response.json()["body"]
        assert body == {"reason": "Over budget", "signature": "***", "requestor_signature": None}

    def test_request_id_generated(self, context_client):
        response = context_client.post("/echo", json={})

        request_id = response.headers["X-Request-ID"]
        assert request_id
        assert response.json()["context"]["request_id"] == request_id

    def test_context_from_headers(self, context_client):
        response = context_client.post(
            "/echo",
            json={},
            headers={
                "X-Request-ID": "req-42",
                "X-Forwarded-For": "10.1.2.3, 172.16.0.1",
                "X-User-Id": "110",
                "X-User-Role": "department_approver",
            },
        )

        context = response.json()["context"]
        assert response.headers["X-Request-ID"] == "req-42"
        assert context["client_ip"] == "10.1.2.3"
        assert context["user_identity"] == "user:110 (department_approver)"
        assert context["request_path"] == "POST /echo"

    def test_anonymous_user(self, context_client):
        response = context_client.post("/echo", json={})

        assert response.json()["context"]["user_identity"] == "anonymous"

    def test_large_body_truncated(self, context_client):
        response = context_client.post("/echo", json={"comments": "x" * (MAX_BODY_LOG_SIZE + 1)})

        body = response.json()["body"]
        assert body["_truncated"] is True

    def test_non_json_body(self, context_client):
        response = context_client.post("/echo", content=b"plain text", headers={"Content-Type": "text/plain"})

        assert response.json()["body"] == {"_content_type": "text/plain", "_size": 10}
