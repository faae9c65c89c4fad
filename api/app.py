"""
FastAPI application factory.

    uvicorn api.app:create_app --factory

Without arguments the app connects to PostgreSQL (DATABASE_URL or Vault) and
reads CRM_* settings from the environment. Tests pass their own datastore.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.actions import create_actions_router
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import ActorContextMiddleware, RequestIDMiddleware
from api.stats import create_stats_router
from clients.postgres_client import PostgresClient
from clients.vault_client import get_database_url
from core.audit import AuditLogger
from core.jobs.task_automation import TaskAutomation, TaskAutomationScheduler
from core.services.customer_service import CustomerService
from core.services.interaction_service import InteractionService
from core.services.order_service import OrderService
from core.services.task_service import TaskService
from core.stores.base import Datastore
from core.stores.postgres import PostgresDatastore
from utils.config import AppConfig

logger = logging.getLogger(__name__)


def build_services(datastore: Datastore) -> dict:
    """Wire every service over one datastore."""
    audit = AuditLogger(datastore.audit)
    return {
        "audit": audit,
        "customer": CustomerService(datastore, audit),
        "order": OrderService(datastore, audit),
        "interaction": InteractionService(datastore, audit),
        "task": TaskService(datastore, audit),
    }


def _postgres_datastore(config: AppConfig) -> PostgresDatastore:
    postgres = PostgresClient(
        get_database_url(),
        statement_timeout_ms=config.statement_timeout_ms,
        isolation_level=config.isolation_level,
        minconn=config.pool_min,
        maxconn=config.pool_max,
    )
    return PostgresDatastore(postgres)


def create_app(datastore: Datastore | None = None, config: AppConfig | None = None) -> FastAPI:
    """Build the API app over the given datastore (PostgreSQL by default)."""
    config = config or AppConfig.from_env()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    owns_datastore = datastore is None
    if datastore is None:
        datastore = _postgres_datastore(config)

    services = build_services(datastore)

    scheduler = None
    if config.automation_enabled:
        automation = TaskAutomation(
            datastore, services["audit"], config.new_customer_follow_up_hours
        )
        scheduler = TaskAutomationScheduler(automation, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown()
            if owns_datastore:
                datastore.postgres.close()

    app = FastAPI(title="CRM", lifespan=lifespan)
    app.state.services = services
    app.state.scheduler = scheduler

    register_error_handlers(app)
    # Last added runs first
    app.add_middleware(ActorContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(create_data_router(services), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")
    app.include_router(create_stats_router(services), prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
