# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""FastAPI application factory and HTTP schemas for the SES dispatcher.

Endpoints:
- ``GET /health``: liveness check, no authentication
- ``GET /status``: running flag, queue depth and observer count
- ``POST /commands/add-messages``: enqueue a batch of messages
- ``POST /commands/run-now``: wake an idle dispatch loop
- ``GET /metrics``: Prometheus exposition

Authentication uses the ``X-API-Token`` header when a token is configured.

Example:
    Creating and running the API application::

        from ses_dispatcher.dispatcher import create_dispatcher
        from ses_dispatcher.api import create_app

        dispatcher = create_dispatcher()
        app = create_app(dispatcher, api_token="secret-token")
        uvicorn.run(app, host="0.0.0.0", port=8000)
"""

import logging
import secrets
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, ConfigDict, Field

from .dispatcher import SesDispatcher

logger = logging.getLogger(__name__)

app = FastAPI(title="SES Dispatcher")
service: SesDispatcher | None = None
API_TOKEN_HEADER_NAME = "X-API-Token"
api_key_scheme = APIKeyHeader(name=API_TOKEN_HEADER_NAME, auto_error=False)
app.state.api_token = None


async def require_token(request: Request, api_token: str | None = Depends(api_key_scheme)) -> None:
    """Validate the API token carried in the ``X-API-Token`` header."""
    expected = getattr(request.app.state, "api_token", None)
    if expected is None:
        return
    if not api_token or not secrets.compare_digest(api_token, expected):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid or missing API token")


auth_dependency = Depends(require_token)


class CommandStatus(BaseModel):
    """Base schema shared by most responses produced by the service."""
    ok: bool
    error: str | None = None


class BasicOkResponse(CommandStatus):
    pass


class StatusResponse(CommandStatus):
    running: bool = Field(..., description="Whether the dispatch loop is running")
    pending: int = Field(..., description="Messages waiting in the queue")
    observers: int | None = Field(default=None, description="Registered outcome observers")


class MessagePayload(BaseModel):
    """One message accepted by ``add-messages``.

    Attributes:
        to: Recipient address, or a list producing one queued item each.
        subject: Subject line.
        body: HTML body.
        from_addr: Sender address (aliased as "from" in JSON).
        from_name: Sender display name.
        metadata: Caller data echoed back in outcomes.
    """
    model_config = ConfigDict(populate_by_name=True)
    to: list[str] | str
    subject: str = ""
    body: str = ""
    from_addr: str | None = Field(default=None, alias="from")
    from_name: str | None = None
    metadata: dict[str, Any] | None = None


class AddMessagesPayload(BaseModel):
    messages: list[MessagePayload] = Field(min_length=1)


class RejectedMessage(BaseModel):
    index: int
    to: str | None = None
    reason: str


class AddMessagesResponse(CommandStatus):
    queued: int = 0
    rejected: list[RejectedMessage] = Field(default_factory=list)


def create_app(
    svc: SesDispatcher,
    api_token: str | None = None,
    lifespan: Callable[[FastAPI], AbstractAsyncContextManager] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    svc:
        Dispatcher (or any object with the same ``handle_command`` and
        ``metrics``) backing the endpoints.
    api_token:
        Optional secret required in the ``X-API-Token`` header.
    lifespan:
        Optional lifespan context manager for startup/shutdown events.

    Returns
    -------
    FastAPI
        A configured application ready to be served by Uvicorn.
    """
    global service
    service = svc

    api = FastAPI(title="SES Dispatcher", lifespan=lifespan) if lifespan is not None else app
    api.state.api_token = api_token
    router = APIRouter(prefix="/commands", tags=["commands"], dependencies=[auth_dependency])

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Validation error on {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    @api.get("/health")
    async def health():
        """Health check endpoint for container orchestration and load balancers."""
        return {"status": "ok"}

    @api.get("/status", response_model=StatusResponse, response_model_exclude_none=True, dependencies=[auth_dependency])
    async def get_status():
        if not service:
            raise HTTPException(500, "Service not initialized")
        result = await service.handle_command("status", {})
        return StatusResponse.model_validate(result)

    @router.post("/run-now", response_model=BasicOkResponse, response_model_exclude_none=True)
    async def run_now():
        """Wake the dispatch loop without waiting for the idle poll interval."""
        if not service:
            raise HTTPException(500, "Service not initialized")
        result = await service.handle_command("run now", {})
        return BasicOkResponse.model_validate(result)

    @router.post("/add-messages", response_model=AddMessagesResponse, response_model_exclude_none=True)
    async def add_messages(payload: AddMessagesPayload):
        """Enqueue messages; blank senders or recipients are reported in ``rejected``."""
        if not service:
            raise HTTPException(500, "Service not initialized")
        messages = [message.model_dump(by_alias=True, exclude_none=True) for message in payload.messages]
        result = await service.handle_command("addMessages", {"messages": messages})
        if "queued" not in result:
            raise HTTPException(400, result.get("error", "Unknown error"))
        return AddMessagesResponse.model_validate(result)

    @api.get("/metrics", dependencies=[auth_dependency])
    async def metrics():
        if not service:
            raise HTTPException(500, "Service not initialized")
        return Response(content=service.metrics.generate_latest(), media_type="text/plain; version=0.0.4")

    api.include_router(router)
    return api
