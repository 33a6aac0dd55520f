"""Catalog administration endpoints.

Local link changes commit first; the matching Meta pushes are enqueued
afterwards and run in the worker.
"""

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel, ConfigDict, Field

from fincas.api.task_auth import require_admin_key
from fincas.domain import catalogs
from fincas.domain.catalog_sync import sync_catalogs_from_meta
from fincas.infra.db import txn
from fincas.observability.correlation import get_correlation_id
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context
from fincas.whatsapp.meta_catalog import CatalogSyncError

router = APIRouter(tags=["catalogs"], dependencies=[Depends(require_admin_key)])

logger = get_logger(__name__)


class LinkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str = Field(..., min_length=1)


class LinkEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    catalog_id: str
    product_id: str = Field(..., min_length=1)


class ReplaceLinksRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    entries: list[LinkEntry]


class ResyncRequest(BaseModel):
    listing_ids: list[str] = Field(..., min_length=1)


class SyncFromMetaRequest(BaseModel):
    catalog_ids: list[str] = Field(..., min_length=1)


def _dispatch(jobs: list[catalogs.CatalogSyncJob], listing_id: str, action: str) -> dict:
    enqueued = catalogs.schedule_sync_jobs(jobs, correlation_id=get_correlation_id())
    logger.info(
        "catalog links changed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                listing_id=listing_id,
                action=action,
                jobs=len(jobs),
                enqueued=enqueued,
            )
        },
    )
    return {
        "listing_id": listing_id,
        "sync": [{"method": j.method, "product_id": j.product_id} for j in jobs],
    }


@router.get("/catalogs")
def list_all_catalogs() -> list[dict]:
    with txn() as cur:
        items = catalogs.list_catalogs(cur)
    return [
        {
            "id": c.id,
            "name": c.name,
            "external_catalog_id": c.external_catalog_id,
            "is_default": c.is_default,
            "location_keyword": c.location_keyword,
            "sort_order": c.sort_order,
        }
        for c in items
    ]


@router.delete("/catalogs/{catalog_id}")
def delete_catalog(catalog_id: str = Path(..., description="Catalog ID")) -> dict:
    """Delete a catalog and all of its links."""
    try:
        with txn() as cur:
            removed = catalogs.remove_catalog(cur, catalog_id)
    except catalogs.CatalogNotFoundError:
        raise HTTPException(status_code=404, detail="Catalog not found")
    return {"id": catalog_id, "links_removed": removed}


@router.get("/listings/{listing_id}/catalogs")
def read_listing_links(listing_id: str = Path(..., description="Listing ID")) -> list[dict]:
    with txn() as cur:
        links = catalogs.list_links_for_listing(cur, listing_id)
    return [
        {**link, "updated_at": link["updated_at"].isoformat() if link["updated_at"] else None}
        for link in links
    ]


@router.put("/listings/{listing_id}/catalogs/{catalog_id}")
def put_link(
    body: LinkRequest,
    listing_id: str = Path(..., description="Listing ID"),
    catalog_id: str = Path(..., description="Catalog ID"),
) -> dict:
    """Create or update the listing's product id in one catalog."""
    try:
        with txn() as cur:
            jobs = catalogs.link(cur, listing_id, catalog_id, body.product_id)
    except catalogs.CatalogNotFoundError:
        raise HTTPException(status_code=404, detail="Catalog not found")
    return _dispatch(jobs, listing_id, "link")


@router.delete("/listings/{listing_id}/catalogs/{catalog_id}")
def delete_link(
    listing_id: str = Path(..., description="Listing ID"),
    catalog_id: str = Path(..., description="Catalog ID"),
) -> dict:
    """Remove the listing from one catalog. No-op when not linked."""
    with txn() as cur:
        jobs = catalogs.unlink(cur, listing_id, catalog_id)
    return _dispatch(jobs, listing_id, "unlink")


@router.put("/listings/{listing_id}/catalogs")
def put_all_links(
    body: ReplaceLinksRequest,
    listing_id: str = Path(..., description="Listing ID"),
) -> dict:
    """Replace every catalog link of the listing."""
    entries = [e.model_dump() for e in body.entries]
    with txn() as cur:
        jobs = catalogs.replace_all_links(cur, listing_id, entries)
    return _dispatch(jobs, listing_id, "replace")


@router.post("/catalogs/resync", status_code=202)
def resync(body: ResyncRequest) -> dict:
    """Queue a full re-push of the given listings to their catalogs."""
    enqueued = catalogs.bulk_resync(body.listing_ids, correlation_id=get_correlation_id())
    return {"enqueued": enqueued}


@router.post("/catalogs/sync-from-meta")
def sync_from_meta(body: SyncFromMetaRequest) -> dict:
    """Import or rename catalogs by their Meta catalog id."""
    try:
        processed = sync_catalogs_from_meta(body.catalog_ids)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except CatalogSyncError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"processed": processed}
