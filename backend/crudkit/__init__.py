"""
crudkit — Package Initializer
==============================

What: Generic resource services for the invoicing platform.
Who:  Imported by every service process, by Alembic and by pytest.

Architecture Note:
    Every service process is built from the same two pieces:

    ┌─────────────────────────────────────┐
    │      ServiceBootstrap (service.py)  │  ← middleware, health, auth, shutdown
    ├─────────────────────────────────────┤
    │   ResourceController (controller.py)│  ← CRUD for one table
    ├─────────────────────────────────────┤
    │  Responses & Pagination (responses) │  ← envelope + page math
    ├─────────────────────────────────────┤
    │        Database (database.py)       │  ← async SQLAlchemy handle
    └─────────────────────────────────────┘

    Concrete resources (users, customers, expenses) live in `crudkit.resources`
    and only declare a model plus a ResourceOptions instance.
"""

__version__ = "1.0.0"
