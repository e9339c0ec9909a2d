"""API package exports."""
from . import routes_admin, routes_channel, routes_files, routes_namespaces

__all__ = [
    "routes_admin",
    "routes_channel",
    "routes_files",
    "routes_namespaces",
]
