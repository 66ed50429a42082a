"""FastAPI dependencies for accessing app state."""

from typing import Optional

from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from fastapi import status
from loguru import logger

from svcreq_api.settings import Settings
from svcreq_api.workflow.enums import UserRole
from svcreq_api.workflow.models import ActorContext
from svcreq_api.workflow.orchestrator import VerificationFlow
from svcreq_api.workflow.orchestrator import WorkflowEngine


def get_settings(request: Request) -> Settings:
    """
    Get application settings from request state.

    Parameters
    ----------
    request : Request
        FastAPI request object

    Returns
    -------
    Settings
        Application settings instance
    """
    return request.app.state.settings


def get_engine(request: Request) -> WorkflowEngine:
    """
    Get the workflow engine from app state.

    The engine is built in create_app (in-memory store) or on startup once the
    domain database pool is open.

    Raises
    ------
    HTTPException
        503 if the engine is not ready yet
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workflow engine is not initialized",
        )
    return engine


def get_verification_flow(request: Request) -> VerificationFlow:
    """Get the vehicle verification flow from app state."""
    flow = getattr(request.app.state, "verification_flow", None)
    if flow is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Verification flow is not initialized",
        )
    return flow


async def get_actor(
    x_user_id: Optional[str] = Header(
        None,
        alias="X-User-Id",
        description="<small>*Authenticated user id (set by the auth gateway)*</small>",
    ),
    x_user_role: Optional[str] = Header(
        None,
        alias="X-User-Role",
        description="<small>*Role of the authenticated user*</small>",
    ),
    x_department_id: Optional[str] = Header(
        None,
        alias="X-Department-Id",
        description="<small>*Department of the authenticated user*</small>",
    ),
) -> ActorContext:
    """
    Build the acting user's context from the identity headers.

    Authentication itself happens upstream; these headers carry its result.

    Raises
    ------
    HTTPException
        401 if the user id or role is missing, 400 if a header is malformed
    """
    if not x_user_id or not x_user_role:
        logger.warning("Request without identity headers", user_id_set=bool(x_user_id), role_set=bool(x_user_role))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id and X-User-Role headers are required",
        )

    try:
        user_id = int(x_user_id)
        department_id = int(x_department_id) if x_department_id else None
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id and X-Department-Id must be integers",
        )

    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        valid_roles = ", ".join(r.value for r in UserRole)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid X-User-Role '{x_user_role}'. Valid roles: {valid_roles}",
        )

    return ActorContext(user_id=user_id, role=role, department_id=department_id)
