"""
crudkit — Platform Service Entry Point
========================================

What:  The platform service: users, customers and expenses resources mounted
       under /api behind Bearer authentication.
How:   `uvicorn crudkit.main:app` serves the module-level app (the uvicorn
       process then owns signals); `crudkit-serve` runs the full bootstrap
       lifecycle with its own graceful shutdown.

Routes:
    /health, /healthz, /ready
    /api/users[/{id}]
    /api/customers[/{id}]
    /api/expenses[/{id}[/restore]]
"""

from typing import Optional

from crudkit.config import Settings, settings
from crudkit.database import Database
from crudkit.resources import (
    build_customers_controller,
    build_expenses_controller,
    build_users_controller,
)
from crudkit.service import ServiceBootstrap, ServiceConfig

API_PREFIX = "/api"


def create_service(
    database: Optional[Database] = None,
    config: Settings = settings,
) -> ServiceBootstrap:
    """Build the bootstrap with every platform resource mounted."""
    database = database or Database.from_settings(config)
    bootstrap = ServiceBootstrap(
        ServiceConfig(service_name=config.service_name),
        database=database,
        settings=config,
    )
    bootstrap.add_routes(API_PREFIX, build_users_controller(database).router("users"))
    bootstrap.add_routes(API_PREFIX, build_customers_controller(database).router("customers"))
    bootstrap.add_routes(API_PREFIX, build_expenses_controller(database).router("expenses"))
    return bootstrap


service = create_service()
app = service.create_app()


def run() -> None:
    """Console entry point (`crudkit-serve`)."""
    service.run()


if __name__ == "__main__":
    run()
