# Routes package init
"""
crudkit — Shared Routes
=========================

Route Inventory:
    - health.py:  GET /health, GET /healthz, GET /ready (mounted on every service)

Resource routes are not hand-written: each ResourceController builds its
own router (see crudkit.controller and crudkit.resources).
"""
