from textwrap import dedent
from typing import Optional
from typing import Tuple

import pydantic
from fastapi import FastAPI
from fastapi.routing import APIRoute
from loguru import logger

from svcreq_api.errors import handle_broad_exceptions
from svcreq_api.errors import handle_pydantic_validation_errors
from svcreq_api.errors import handle_workflow_errors
from svcreq_api.monitoring.logger import configure_logger
from svcreq_api.monitoring.request_context import RequestContextMiddleware
from svcreq_api.routes.routes_health import ROUTER_HEALTH
from svcreq_api.routes.routes_item_requests import ROUTER_ITEM_REQUESTS
from svcreq_api.routes.routes_requests import ROUTER_REQUESTS
from svcreq_api.routes.routes_vehicle_requests import ROUTER_VEHICLE_REQUESTS
from svcreq_api.settings import Settings
from svcreq_api.workflow.audit import AuditEmitter
from svcreq_api.workflow.audit import CompositeAuditEmitter
from svcreq_api.workflow.audit import LoguruAuditEmitter
from svcreq_api.workflow.audit import RepositoryAuditEmitter
from svcreq_api.workflow.db.memory_store import InMemoryEntityStore
from svcreq_api.workflow.db.store import EntityStore
from svcreq_api.workflow.exceptions import WorkflowError
from svcreq_api.workflow.orchestrator import VerificationFlow
from svcreq_api.workflow.orchestrator import WorkflowEngine
from svcreq_api.workflow.orchestrator import never_verify
from svcreq_api.workflow.orchestrator import travel_includes_sunday


def build_workflow(
    settings: Settings,
    store: EntityStore,
    audit_emitter: AuditEmitter,
) -> Tuple[WorkflowEngine, VerificationFlow]:
    """Wire the engine and verification flow to a store and audit sink using the workflow settings."""
    engine = WorkflowEngine(
        store,
        audit_emitter,
        verification_trigger=travel_includes_sunday if settings.enable_sunday_verification else never_verify,
        item_reference_prefix=settings.item_reference_prefix,
        vehicle_reference_prefix=settings.vehicle_reference_prefix,
    )
    return engine, VerificationFlow(store, audit_emitter)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[EntityStore] = None,
    audit_emitter: Optional[AuditEmitter] = None,
) -> FastAPI:
    """Create a FastAPI application.

    Configuration is loaded from environment variables via pydantic-settings.
    - With DOMAIN_DB_CONNECTION_STRING set, requests live in PostgreSQL (pool opened on startup)
    - Without it, an in-memory store is used (local development, tests)

    A store and audit emitter can be injected directly, which skips the database wiring.
    """
    settings = settings or Settings()

    configure_logger(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_serialize=settings.log_serialize,
    )

    logger.info(
        "Configuration loaded successfully",
        environment=settings.environment,
        database_configured=bool(settings.domain_db_connection_string),
        audit_trail=settings.enable_audit_trail,
        sunday_verification=settings.enable_sunday_verification,
    )

    app = FastAPI(
        title=settings.app_name,
        version="v1",
        description=dedent(
            """
        Approval workflows for IT equipment (item) requests and service vehicle requests.

        | Flow | Stages |
        | --- | --- |
        | Item request | department approver, IT manager, service desk |
        | Vehicle request | department approver, vehicle steward (optional verification lane) |

        Every call carries the caller identity in `X-User-Id`, `X-User-Role` and `X-Department-Id`.
        """
        ),
        generate_unique_id_function=custom_generate_unique_id,
        swagger_ui_parameters={
            "defaultModelsExpandDepth": -1,  # Hide schemas section
            "defaultModelExpandDepth": 1,  # Keep models collapsed if shown
        },
    )
    app.state.settings = settings
    app.state.engine = None
    app.state.verification_flow = None

    # Add request context middleware for tracking who/where requests come from
    app.add_middleware(RequestContextMiddleware)
    app.include_router(ROUTER_HEALTH, prefix="/api")
    app.include_router(ROUTER_REQUESTS, prefix="/api")
    app.include_router(ROUTER_ITEM_REQUESTS, prefix="/api")
    app.include_router(ROUTER_VEHICLE_REQUESTS, prefix="/api")

    if store is not None or not settings.domain_db_connection_string:
        store = store or InMemoryEntityStore()
        audit_emitter = audit_emitter or LoguruAuditEmitter()
        app.state.store = store
        app.state.engine, app.state.verification_flow = build_workflow(settings, store, audit_emitter)
        logger.info("Workflow engine ready", store=type(store).__name__)
    else:
        from svcreq_api.workflow.db.pool import DomainDBPool
        from svcreq_api.workflow.db.postgres_store import PostgresEntityStore
        from svcreq_api.workflow.db.repository_audit import AuditTrailRepository

        domain_db_pool = DomainDBPool(
            settings.domain_db_connection_string,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        app.state.domain_db_pool = domain_db_pool

        @app.on_event("startup")
        async def startup_workflow():
            """Open the domain database pool and wire the engine to it."""
            await domain_db_pool.initialize()
            pg_store = PostgresEntityStore(domain_db_pool.pool)

            emitter = audit_emitter
            if emitter is None:
                emitters = [LoguruAuditEmitter()]
                if settings.enable_audit_trail:
                    emitters.append(RepositoryAuditEmitter(AuditTrailRepository(domain_db_pool.pool)))
                emitter = CompositeAuditEmitter(emitters)

            app.state.store = pg_store
            app.state.engine, app.state.verification_flow = build_workflow(settings, pg_store, emitter)
            logger.success("Workflow database initialized", audit_trail=settings.enable_audit_trail)

        @app.on_event("shutdown")
        async def shutdown_workflow():
            """Close workflow database connections."""
            await domain_db_pool.close()
            logger.info("Workflow database closed")

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.add_exception_handler(
        exc_class_or_status_code=WorkflowError,
        handler=handle_workflow_errors,
    )

    app.middleware("http")(handle_broad_exceptions)

    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    if route.tags:
        return f"{route.tags[0]}-{route.name}"
    return route.name


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
