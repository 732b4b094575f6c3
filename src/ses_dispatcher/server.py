# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""ASGI application entry point for uvicorn.

Usage:
    uvicorn ses_dispatcher.server:create_server_app --factory --port 8000

Environment variables:
    SESAccess, SESSecret, SESRegion: SES credentials and region (required).
    SESD_CONFIG: Optional INI file, see :mod:`ses_dispatcher.config`.
    SESD_API_TOKEN: API authentication token.
    SESD_HOST, SESD_PORT: Bind address for :func:`main`.
    SESD_LOG_LEVEL: Logging level (default: INFO).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .api import create_app
from .config import load_config, load_server_settings
from .dispatcher import SesDispatcher, create_dispatcher
from .logger import configure_logging

_logger = logging.getLogger(__name__)


def _lifespan_for(dispatcher: SesDispatcher):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the dispatch loop with the app; drain-free stop on shutdown."""
        _logger.info("Starting ses-dispatcher service...")
        await dispatcher.start()
        try:
            yield
        finally:
            _logger.info("Stopping ses-dispatcher service...")
            await dispatcher.stop()

    return lifespan


def create_server_app(config_path: str | None = None) -> FastAPI:
    """Build the dispatcher from config and environment and wrap it in the API.

    Raises:
        ConfigurationError: If credentials or settings are invalid.
    """
    settings = load_server_settings(config_path)
    dispatcher = create_dispatcher(load_config(config_path))
    return create_app(dispatcher, api_token=settings.api_token, lifespan=_lifespan_for(dispatcher))


def main(host: str | None = None, port: int | None = None, config_path: str | None = None) -> None:
    """Configure logging and serve the API with uvicorn."""
    configure_logging()
    settings = load_server_settings(config_path)
    app = create_server_app(config_path)
    uvicorn.run(app, host=host or settings.host, port=int(port or settings.port))


if __name__ == "__main__":
    main()
