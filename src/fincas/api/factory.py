"""FastAPI application factory.

One codebase, two deployments selected by APP_ROLE:

- public: YCloud webhook plus the admin endpoints (conversations, catalogs)
- worker: everything public serves, plus the /tasks/* handlers that Cloud
  Tasks (or the http backend) call
"""

import os
from typing import Literal

from fastapi import APIRouter, FastAPI, Request, Response

from fincas.observability.correlation import (
    CORRELATION_ID_HEADER,
    reset_correlation_id,
    resolve_correlation_id,
    set_correlation_id,
)

from .routers import public, worker
from .routes import catalogs, conversations, tasks_catalog, tasks_whatsapp, webhooks_ycloud

AppRole = Literal["public", "worker"]

PUBLIC_ROUTERS: tuple[APIRouter, ...] = (
    public.router,
    webhooks_ycloud.router,
    conversations.router,
    catalogs.router,
)
WORKER_ROUTERS: tuple[APIRouter, ...] = (
    worker.router,
    tasks_whatsapp.router,
    tasks_catalog.router,
)


def routers_for(role: str) -> tuple[APIRouter, ...]:
    """Routers mounted for a role.

    Raises:
        ValueError: If the role is neither "public" nor "worker".
    """
    if role == "public":
        return PUBLIC_ROUTERS
    if role == "worker":
        return PUBLIC_ROUTERS + WORKER_ROUTERS
    raise ValueError(f"Unknown APP_ROLE: {role}")


def create_app(role: AppRole | None = None) -> FastAPI:
    """Create the app for `role` (default: APP_ROLE env var, else "public")."""
    resolved_role = role or os.environ.get("APP_ROLE", "public")
    mounted = routers_for(resolved_role)

    app = FastAPI(title=f"Fincas ({resolved_role})", docs_url=None, redoc_url=None)

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next) -> Response:
        cid = resolve_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
        finally:
            reset_correlation_id(token)
        response.headers[CORRELATION_ID_HEADER] = cid
        return response

    for router in mounted:
        app.include_router(router)

    return app
