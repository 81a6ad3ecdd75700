"""HTTP API for the booking workflow."""

from .admin import admin_routes
from .middleware import error_middleware, identity_middleware, security_headers_middleware
from .routes import routes

__all__ = [
    "admin_routes",
    "error_middleware",
    "identity_middleware",
    "routes",
    "security_headers_middleware",
]
