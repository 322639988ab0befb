"""hostgate control plane.

Public API:
    router        — POST /api/rpc, GET /reload-config, /api/* 404
    reload_routes — rebuild the routing table from the route store
"""
from hostgate.control.routes import reload_routes, router

__all__ = ["reload_routes", "router"]
