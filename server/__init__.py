"""Server package for the buildstamp HTTP service.

This package exposes the FastAPI application that answers every request
with the build timestamp document.
"""

from .api import (
    # FastAPI application
    app,
    # Response model
    BuildStampResponse,
    # Providers
    configure,
    get_clock,
    get_server_config,
)

__all__ = [
    "app",
    "BuildStampResponse",
    "configure",
    "get_clock",
    "get_server_config",
]
