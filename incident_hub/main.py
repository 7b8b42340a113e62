"""
Incident Hub - Main Application
===============================

Incident-management backend keeping tickets and playbooks in a relational
record store with a vector twin in Milvus.

Modules:
- Tickets: ServiceNow ingestion, similar-ticket and hybrid search
- Playbooks: authoring, lexical, vector and hybrid search

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, embeddings, vector store, ServiceNow
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from incident_hub.config import settings
from incident_hub.core import SourceUnavailableException
from incident_hub.infrastructure.database import (
    close_database,
    create_tables,
    init_database,
    ping_database,
)
from incident_hub.playbooks.interfaces import playbook_router
from incident_hub.shared.api.middleware import install_middleware
from incident_hub.shared.infrastructure.logging import get_logger, setup_logging
from incident_hub.tickets.infrastructure import PollingScheduler
from incident_hub.tickets.interfaces import ticket_router
from incident_hub.tickets.interfaces.controllers import get_servicenow_client, get_ticket_sync_service

logger = get_logger(__name__)

polling_scheduler: Optional[PollingScheduler] = None
startup_import_task: Optional[asyncio.Task] = None


async def run_startup_bulk_import() -> None:
    """Guarded bulk import; a no-op once an import has completed."""
    try:
        result = await get_ticket_sync_service().bulk_import()
        logger.info(
            "Startup bulk import finished",
            extra={"skipped": result.skipped, **result.tally.to_dict()}
        )
    except SourceUnavailableException as e:
        logger.error("Startup bulk import could not reach ServiceNow", extra={"error": e.message})
    except Exception as e:
        logger.error("Startup bulk import failed", extra={"error_type": type(e).__name__, "error": str(e)})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Kick off the guarded bulk import (if enabled)
    4. Start the polling scheduler (if enabled)

    SHUTDOWN:
    1. Stop the polling scheduler
    2. Close the ServiceNow client
    3. Close database connections
    """
    global polling_scheduler, startup_import_task

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Incident Hub", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "embedding_provider": settings.embedding_provider,
    })

    logger.info("Initializing database")
    init_database()

    # Use migrations in production
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    if settings.enable_bulk_import:
        startup_import_task = asyncio.create_task(run_startup_bulk_import())

    if settings.enable_polling:
        polling_scheduler = PollingScheduler(get_ticket_sync_service(), settings.polling_interval_seconds)
        await polling_scheduler.start()

    logger.info("Incident Hub started successfully")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down Incident Hub")

    if polling_scheduler:
        await polling_scheduler.stop()
        polling_scheduler = None

    if startup_import_task and not startup_import_task.done():
        startup_import_task.cancel()

    await get_servicenow_client().close()
    await close_database()

    logger.info("Incident Hub shutdown complete")


app = FastAPI(
    title="Incident Hub API",
    description="""
    ## Incident Management Retrieval Backend

    Tickets and playbooks live in PostgreSQL; each record has a vector twin
    in Milvus built from a weighted text rendering of its fields.

    ### Tickets
    - `POST /tickets/sync/bulk-import` - Guarded full import from ServiceNow
    - `POST /tickets/sync` - Ad-hoc paginated sync
    - `GET /tickets/search/similar` - Similar tickets
    - `POST /tickets/search/hybrid` - Lexical + vector fusion

    ### Playbooks
    - `POST /playbooks` - Create playbook (vectorized after commit)
    - `GET /playbooks/search` - Lexical search
    - `GET /playbooks/search/vector` - Similarity search
    - `POST /playbooks/search/hybrid` - Lexical + vector fusion
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_middleware(app)

# === Include Module Routers ===
app.include_router(ticket_router)
app.include_router(playbook_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports database connectivity and scheduler state. Vector index and
    embedding health live under each module's /vectorization/health.
    """
    database_ok = await ping_database()
    checks = {
        "database": "connected" if database_ok else "unavailable",
        "polling_scheduler": polling_scheduler.status() if polling_scheduler else {"running": False},
    }

    return {
        "status": "healthy" if database_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "tickets": {"prefix": "/tickets"},
            "playbooks": {"prefix": "/playbooks"},
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "incident_hub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
