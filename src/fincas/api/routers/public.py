"""Liveness for the webhook/admin service (APP_ROLE=public)."""

from fastapi import APIRouter

from fincas.observability.logging import SERVICE_NAME

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "service": SERVICE_NAME, "role": "public"}
