"""hostgate routing core.

Public API:
    RouteRecord            — {name, domain, proxyTo} route record
    Forwarder              — per-domain proxy bound to one backend target
    RoutingTable           — immutable domain → Forwarder mapping
    build_routing_table()  — compile a route snapshot into a RoutingTable
    DynamicProxy           — owner of the live table (swap_table, update_config)
    HostDispatchMiddleware — Host-header dispatch for every inbound request
"""

from hostgate.routing.dispatch import DynamicProxy, HostDispatchMiddleware
from hostgate.routing.forwarder import BackendUnavailableError, Forwarder
from hostgate.routing.records import InvalidRouteRecord, RouteRecord
from hostgate.routing.table import RoutingTable, build_routing_table

__all__ = [
    "BackendUnavailableError",
    "DynamicProxy",
    "Forwarder",
    "HostDispatchMiddleware",
    "InvalidRouteRecord",
    "RouteRecord",
    "RoutingTable",
    "build_routing_table",
]
