"""FastAPI application for the buildstamp service.

Every request, whatever its method or path, is answered with a single-field
JSON document holding the build timestamp:

    {"buildAt": "2024-03-01T12:05:00.000Z"}

Usage:
    from server.api import app
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from buildstamp import __version__
from buildstamp.clock import TIMESTAMP_FIELD, Clock, build_timestamp, utc_now
from buildstamp.config import ServerConfig


logger = logging.getLogger(__name__)


# =============================================================================
# Response model
# =============================================================================


class BuildStampResponse(BaseModel):
    """Response document with the build timestamp."""

    model_config = ConfigDict(populate_by_name=True)

    build_at: str = Field(alias=TIMESTAMP_FIELD)


# =============================================================================
# Settings and clock providers
# =============================================================================


_server_config: Optional[ServerConfig] = None


def configure(config: Optional[ServerConfig]) -> None:
    """Install the settings used by the timestamp handler."""
    global _server_config
    _server_config = config


def get_server_config() -> ServerConfig:
    """Get the active server settings (defaults until configured)."""
    global _server_config
    if _server_config is None:
        _server_config = ServerConfig()
    return _server_config


def get_clock() -> Clock:
    """Get the wall clock used to stamp responses."""
    return utc_now


# =============================================================================
# Application lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    config = get_server_config()
    logger.info(
        "buildstamp ready (rounding=%s, step=%d min)",
        config.rounding,
        config.round_minutes,
    )

    yield

    logger.info("buildstamp stopped")


# =============================================================================
# FastAPI application
# =============================================================================


app = FastAPI(
    title="buildstamp",
    description="Reports the build timestamp as JSON",
    version=__version__,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


async def build_stamp(request: Request) -> JSONResponse:
    """Return the current build timestamp, rounded down when enabled."""
    config = get_server_config()
    now = get_clock()()
    response = BuildStampResponse(
        build_at=build_timestamp(now, rounding=config.rounding, step=config.round_minutes)
    )
    return JSONResponse(content=response.model_dump(by_alias=True))


# No method list: TRACE, PROPFIND and any other verb get the same answer
app.add_route("/{path:path}", build_stamp, include_in_schema=False)
