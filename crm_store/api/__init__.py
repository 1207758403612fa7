"""HTTP API for the CRM local store."""

from .app import create_app, error_envelope, status_for
from .routes import router

__all__ = ["create_app", "error_envelope", "router", "status_for"]
