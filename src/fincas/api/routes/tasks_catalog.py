"""Worker routes pushing catalog changes to Meta.

Remote failures are acknowledged with 200: catalog pushes are not retried
automatically, a later resync reconciles them.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from fincas.api.task_auth import verify_task_auth
from fincas.domain.catalog_sync import resync_listing, run_sync_job
from fincas.domain.catalogs import CatalogSyncJob
from fincas.observability.correlation import get_correlation_id
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/catalog", tags=["tasks"])

logger = get_logger(__name__)

_JOB_FIELDS = ("listing_id", "external_catalog_id", "product_id")


async def _read_payload(request: Request) -> dict[str, Any] | None:
    correlation_id = get_correlation_id()
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = await request.json()
    except Exception:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return None
    return payload if isinstance(payload, dict) else None


def _job_from_payload(payload: dict[str, Any], method: str) -> CatalogSyncJob | None:
    if any(not payload.get(field) for field in _JOB_FIELDS):
        return None
    return CatalogSyncJob(
        method=method,  # type: ignore[arg-type]
        listing_id=str(payload["listing_id"]),
        external_catalog_id=str(payload["external_catalog_id"]),
        product_id=str(payload["product_id"]),
    )


@router.post("/sync-item")
async def sync_item(request: Request) -> Response:
    """CREATE or UPDATE one listing in one catalog."""
    payload = await _read_payload(request)
    if payload is None:
        return Response(status_code=400, content="invalid json")

    method = payload.get("method", "UPDATE")
    if method not in ("CREATE", "UPDATE"):
        return Response(status_code=400, content="invalid method")

    job = _job_from_payload(payload, method)
    if job is None:
        return Response(status_code=400, content="missing required fields")

    status = run_sync_job(job)
    return Response(status_code=200, content=status)


@router.post("/delete-item")
async def delete_item(request: Request) -> Response:
    """DELETE one product from one catalog."""
    payload = await _read_payload(request)
    if payload is None:
        return Response(status_code=400, content="invalid json")

    job = _job_from_payload(payload, "DELETE")
    if job is None:
        return Response(status_code=400, content="missing required fields")

    status = run_sync_job(job)
    return Response(status_code=200, content=status)


@router.post("/resync-listing")
async def resync(request: Request) -> Response:
    """Re-push a listing to every catalog it is linked to."""
    payload = await _read_payload(request)
    if payload is None:
        return Response(status_code=400, content="invalid json")

    listing_id = payload.get("listing_id")
    if not listing_id:
        return Response(status_code=400, content="missing required fields")

    try:
        result = resync_listing(str(listing_id))
    except Exception:
        logger.exception(
            "resync-listing task failed",
            extra={"extra_fields": safe_log_context(listing_id=listing_id)},
        )
        return Response(status_code=500, content="processing failed")

    return JSONResponse(status_code=200, content=result)
