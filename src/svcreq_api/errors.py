"""Error handling for the FastAPI application and workflow exceptions."""

import pydantic
from fastapi import Request
from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from loguru import logger

from svcreq_api.monitoring.logger import log_response_info
from svcreq_api.workflow.exceptions import InvalidStateError
from svcreq_api.workflow.exceptions import NotAuthorizedError
from svcreq_api.workflow.exceptions import NotFoundError
from svcreq_api.workflow.exceptions import NotOwnerError
from svcreq_api.workflow.exceptions import VersionConflictError
from svcreq_api.workflow.exceptions import WorkflowError
from svcreq_api.workflow.exceptions import WorkflowValidationError

# Explicit exports
__all__ = [
    "WORKFLOW_ERROR_STATUS",
    "handle_broad_exceptions",
    "handle_pydantic_validation_errors",
    "handle_workflow_errors",
]

# Most specific first; VersionConflictError is retryable, InvalidStateError is not
WORKFLOW_ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (NotOwnerError, status.HTTP_403_FORBIDDEN),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (VersionConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (WorkflowValidationError, status.HTTP_400_BAD_REQUEST),
)


# fastapi docs on middlewares: https://fastapi.tiangolo.com/tutorial/middleware/
async def handle_broad_exceptions(request: Request, call_next):
    """Handle any exception that goes unhandled by a more specific exception handler."""
    try:
        return await call_next(request)
    except Exception as err:  # pylint: disable=broad-except
        error_response = {"detail": "Internal server error", "error_type": type(err).__name__}

        # Get request body from request state (set by RequestContextMiddleware)
        request_body = getattr(request.state, "request_body", None)

        # Log with full context for database storage
        logger.opt(exception=err).error(
            "Unhandled exception: {error_type}: {error_message}",
            http_status=500,
            status_code=500,
            http_method=request.method,
            url_path=str(request.url.path),
            error_type=type(err).__name__,
            error_message=str(err),
            request_body=request_body,
            response_body=error_response,
        )

        response = JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response,
        )
        log_response_info(response)
        return response


# fastapi docs on error handlers: https://fastapi.tiangolo.com/tutorial/handling-errors/
async def handle_pydantic_validation_errors(request: Request, exc: pydantic.ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = exc.errors()
    error_response = {
        "detail": [
            {
                "msg": error["msg"],
                "input": error["input"],
            }
            for error in errors
        ]
    }

    # Get request body from request state (set by RequestContextMiddleware)
    request_body = getattr(request.state, "request_body", None)

    # Log validation errors with full context
    logger.warning(
        f"Validation error: {len(errors)} validation errors",
        http_status=422,
        status_code=422,
        http_method=request.method,
        url_path=str(request.url.path),
        error_type="ValidationError",
        validation_errors=errors,
        request_body=request_body,
        response_body=error_response,
    )

    response = JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_errors(error_response),
    )
    log_response_info(response)

    return response


async def handle_workflow_errors(request: Request, exc: WorkflowError) -> JSONResponse:
    """
    Convert workflow errors to HTTP responses.

    Maps workflow exceptions to HTTP status codes:
    - NotFoundError -> 404 Not Found
    - NotOwnerError, NotAuthorizedError -> 403 Forbidden
    - InvalidStateError -> 409 Conflict (not retryable)
    - VersionConflictError -> 409 Conflict (retryable: re-read and retry)
    - WorkflowValidationError -> 400 Bad Request

    Parameters
    ----------
    request : Request
        FastAPI request object
    exc : WorkflowError
        Workflow exception raised by the engine or verification flow

    Returns
    -------
    JSONResponse
        HTTP response with appropriate status code and error details
    """
    http_status = next(
        (code for error_class, code in WORKFLOW_ERROR_STATUS if isinstance(exc, error_class)),
        status.HTTP_400_BAD_REQUEST,
    )
    error_type = type(exc).__name__
    error_response = {
        "detail": exc.message,
        "error_type": error_type,
        "retryable": exc.retryable,
    }
    if exc.details:
        error_response["context"] = exc.details

    request_body = getattr(request.state, "request_body", None)

    logger.warning(
        "Workflow error: {error_type}: {error_message}",
        http_status=http_status,
        status_code=http_status,
        http_method=request.method,
        url_path=str(request.url.path),
        error_type=error_type,
        error_message=exc.message,
        retryable=exc.retryable,
        request_body=request_body,
        response_body=error_response,
    )

    response = JSONResponse(
        status_code=http_status,
        content=jsonable_errors(error_response),
    )
    log_response_info(response)
    return response


def jsonable_errors(content: dict) -> dict:
    """Make error payloads JSON-safe (UUIDs, dates and Decimals in inputs or context)."""
    return jsonable_encoder(content)
