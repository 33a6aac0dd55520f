"""Push listing ↔ catalog changes to Meta.

Runs in worker tasks. A missing META_CATALOG_ACCESS_TOKEN makes these
background pushes log and skip; remote errors are logged and the job is
dropped (a later resync reconciles).
"""

from typing import Literal

from fincas.domain import catalogs
from fincas.domain.catalogs import CatalogSyncJob
from fincas.infra.db import txn
from fincas.infra.repositories.listings_repository import get_listing
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context
from fincas.whatsapp import meta_catalog
from fincas.whatsapp.meta_catalog import CatalogSyncError

logger = get_logger(__name__)

SyncStatus = Literal["synced", "skipped", "failed"]


def _missing_token(listing_id: str) -> None:
    logger.warning(
        "catalog sync skipped: META_CATALOG_ACCESS_TOKEN not set",
        extra={"extra_fields": safe_log_context(listing_id=listing_id)},
    )


def run_sync_job(job: CatalogSyncJob) -> SyncStatus:
    """Execute one CREATE/UPDATE/DELETE push. Never raises CatalogSyncError."""
    token = meta_catalog.get_access_token()
    if not token:
        _missing_token(job.listing_id)
        return "skipped"

    data = None
    if job.method != "DELETE":
        with txn() as cur:
            listing = get_listing(cur, job.listing_id)
        if listing is None:
            logger.warning(
                "catalog sync skipped: listing not found",
                extra={"extra_fields": safe_log_context(listing_id=job.listing_id)},
            )
            return "skipped"
        data = meta_catalog.build_product_payload(listing, job.product_id)

    try:
        meta_catalog.push_item(
            catalog_id=job.external_catalog_id,
            retailer_id=job.product_id,
            method=job.method,
            data=data,
            access_token=token,
        )
    except CatalogSyncError as e:
        logger.error(
            "catalog sync failed",
            extra={
                "extra_fields": safe_log_context(
                    listing_id=job.listing_id,
                    method=job.method,
                    status=e.status_code,
                )
            },
        )
        return "failed"

    logger.info(
        "catalog item synced",
        extra={"extra_fields": safe_log_context(listing_id=job.listing_id, method=job.method)},
    )
    return "synced"


def resync_listing(listing_id: str) -> dict[str, int]:
    """Re-push the listing as UPDATE to every catalog it is linked to.

    Each catalog is attempted independently.

    Returns:
        {"synced": n, "failed": m}
    """
    result = {"synced": 0, "failed": 0}

    token = meta_catalog.get_access_token()
    if not token:
        _missing_token(listing_id)
        return result

    with txn() as cur:
        listing = get_listing(cur, listing_id)
        links = catalogs.list_links_for_listing(cur, listing_id)

    if listing is None:
        logger.warning(
            "resync skipped: listing not found",
            extra={"extra_fields": safe_log_context(listing_id=listing_id)},
        )
        return result

    for link in links:
        try:
            meta_catalog.push_item(
                catalog_id=link["external_catalog_id"],
                retailer_id=link["product_id"],
                method="UPDATE",
                data=meta_catalog.build_product_payload(listing, link["product_id"]),
                access_token=token,
            )
            result["synced"] += 1
        except CatalogSyncError as e:
            result["failed"] += 1
            logger.error(
                "resync failed for catalog",
                extra={
                    "extra_fields": safe_log_context(
                        listing_id=listing_id,
                        catalog=link["catalog_name"],
                        status=e.status_code,
                    )
                },
            )

    logger.info(
        "listing resynced",
        extra={"extra_fields": safe_log_context(listing_id=listing_id, **result)},
    )
    return result


def sync_catalogs_from_meta(external_catalog_ids: list[str]) -> int:
    """Import catalogs by Meta id: create unknown ones, rename known ones.

    Synchronous admin operation, so configuration and remote errors raise.

    Returns:
        Number of catalogs processed.

    Raises:
        RuntimeError: If META_CATALOG_ACCESS_TOKEN is not set.
        CatalogSyncError: If Meta rejects a lookup.
    """
    token = meta_catalog.get_access_token()
    if not token:
        raise RuntimeError("Missing Meta config: META_CATALOG_ACCESS_TOKEN required")

    fetched = []
    for external_id in dict.fromkeys(i.strip() for i in external_catalog_ids if i.strip()):
        data = meta_catalog.fetch_catalog(external_id, access_token=token)
        fetched.append({"id": str(data.get("id") or external_id), "name": data.get("name") or external_id})

    with txn() as cur:
        return catalogs.upsert_catalogs_from_meta(cur, fetched)
