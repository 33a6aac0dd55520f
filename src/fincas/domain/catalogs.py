"""WhatsApp catalogs and listing ↔ catalog links.

A listing can appear in several Meta catalogs, each time under its own
product retailer id. This module owns the local mapping and the catalog
choice for a location; pushing changes to Meta happens in background tasks
(see `fincas.domain.catalog_sync`).

Write operations return the `CatalogSyncJob`s they imply instead of
enqueuing them, so the caller can dispatch after its transaction commits:

    with txn() as cur:
        jobs = link(cur, listing_id, catalog_id, product_id)
    schedule_sync_jobs(jobs)
"""

from dataclasses import dataclass
from typing import Any, Iterable, Literal, Sequence

from psycopg2.extensions import cursor as PgCursor

from fincas.infra.time import utc_now
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context
from fincas.tasks.client import get_tasks_client, new_task_id

logger = get_logger(__name__)

# Catalogs without an explicit order sort last
UNORDERED = 999

SYNC_ITEM_PATH = "/tasks/catalog/sync-item"
DELETE_ITEM_PATH = "/tasks/catalog/delete-item"
RESYNC_LISTING_PATH = "/tasks/catalog/resync-listing"


class CatalogNotFoundError(Exception):
    """Raised when an operation targets a catalog that does not exist."""

    pass


@dataclass(frozen=True)
class WhatsAppCatalog:
    id: str
    name: str
    external_catalog_id: str
    is_default: bool = False
    location_keyword: str | None = None
    sort_order: int | None = None

    @property
    def rank(self) -> int:
        return self.sort_order if self.sort_order is not None else UNORDERED


@dataclass(frozen=True)
class ProductEntry:
    listing_id: str
    product_id: str


@dataclass(frozen=True)
class CatalogSyncJob:
    """One remote catalog change to push to Meta."""

    method: Literal["CREATE", "UPDATE", "DELETE"]
    listing_id: str
    external_catalog_id: str
    product_id: str

    def to_payload(self) -> dict[str, str]:
        return {
            "method": self.method,
            "listing_id": self.listing_id,
            "external_catalog_id": self.external_catalog_id,
            "product_id": self.product_id,
        }


_CATALOG_COLUMNS = "id, name, external_catalog_id, is_default, location_keyword, sort_order"


def _row_to_catalog(row: Sequence[Any]) -> WhatsAppCatalog:
    return WhatsAppCatalog(
        id=str(row[0]),
        name=row[1],
        external_catalog_id=row[2],
        is_default=bool(row[3]),
        location_keyword=row[4],
        sort_order=row[5],
    )


# ---------------------------------------------------------------------------
# Catalog selection (pure)
# ---------------------------------------------------------------------------


def _ordered(catalogs: Iterable[WhatsAppCatalog]) -> list[WhatsAppCatalog]:
    return sorted(catalogs, key=lambda c: c.rank)


def select_default_catalog(catalogs: Iterable[WhatsAppCatalog]) -> WhatsAppCatalog | None:
    """Catalog flagged as default, else the lowest-ordered one, else None."""
    ordered = _ordered(catalogs)
    for catalog in ordered:
        if catalog.is_default:
            return catalog
    return ordered[0] if ordered else None


def select_catalog_by_keyword(
    catalogs: Iterable[WhatsAppCatalog], location: str
) -> WhatsAppCatalog | None:
    """Lowest-ordered catalog whose keyword is contained in the location."""
    loc = location.strip().lower()
    if not loc:
        return None
    for catalog in _ordered(catalogs):
        keyword = (catalog.location_keyword or "").strip().lower()
        if keyword and keyword in loc:
            return catalog
    return None


def select_catalog_for_location(
    catalogs: Iterable[WhatsAppCatalog], location: str
) -> WhatsAppCatalog | None:
    """Keyword match for the location, falling back to the default catalog."""
    catalogs = list(catalogs)
    return select_catalog_by_keyword(catalogs, location) or select_default_catalog(catalogs)


# ---------------------------------------------------------------------------
# Catalog reads
# ---------------------------------------------------------------------------


def list_catalogs(cur: PgCursor) -> list[WhatsAppCatalog]:
    """All catalogs in display order."""
    cur.execute(
        f"""
        SELECT {_CATALOG_COLUMNS}
        FROM whatsapp_catalogs
        ORDER BY COALESCE(sort_order, %s), created_at
        """,
        (UNORDERED,),
    )
    return [_row_to_catalog(row) for row in cur.fetchall()]


def get_catalog(cur: PgCursor, catalog_id: str) -> WhatsAppCatalog | None:
    cur.execute(
        f"SELECT {_CATALOG_COLUMNS} FROM whatsapp_catalogs WHERE id = %s",
        (catalog_id,),
    )
    row = cur.fetchone()
    return _row_to_catalog(row) if row else None


def get_default_catalog(cur: PgCursor) -> WhatsAppCatalog | None:
    return select_default_catalog(list_catalogs(cur))


def resolve_catalog_for_location(cur: PgCursor, location: str) -> WhatsAppCatalog | None:
    """Pick the catalog to present listings for a free-text location.

    Returns None only when no catalogs exist.
    """
    return select_catalog_for_location(list_catalogs(cur), location)


# ---------------------------------------------------------------------------
# Link reads
# ---------------------------------------------------------------------------


def product_ids_for_listings(
    cur: PgCursor, catalog_id: str, listing_ids: Sequence[str]
) -> list[ProductEntry]:
    """Product ids of the given listings in one catalog.

    Listings without a link in the catalog are omitted. Order follows
    `listing_ids`.
    """
    if not listing_ids:
        return []

    cur.execute(
        """
        SELECT listing_id, product_id
        FROM property_catalog_links
        WHERE catalog_id = %s AND listing_id = ANY(%s::uuid[])
        """,
        (catalog_id, list(listing_ids)),
    )
    by_listing = {str(row[0]): row[1] for row in cur.fetchall()}
    return [
        ProductEntry(listing_id=lid, product_id=by_listing[lid])
        for lid in listing_ids
        if lid in by_listing
    ]


def listing_ids_in_any_catalog(
    cur: PgCursor, listing_ids: Sequence[str] | None = None
) -> set[str]:
    """Listings that have at least one catalog link (optionally restricted)."""
    if listing_ids is None:
        cur.execute("SELECT DISTINCT listing_id FROM property_catalog_links")
    else:
        if not listing_ids:
            return set()
        cur.execute(
            """
            SELECT DISTINCT listing_id FROM property_catalog_links
            WHERE listing_id = ANY(%s::uuid[])
            """,
            (list(listing_ids),),
        )
    return {str(row[0]) for row in cur.fetchall()}


def list_links_for_listing(cur: PgCursor, listing_id: str) -> list[dict[str, Any]]:
    """Catalog links of a listing, with catalog name and Meta catalog id."""
    cur.execute(
        """
        SELECT l.catalog_id, c.name, c.external_catalog_id, l.product_id, l.updated_at
        FROM property_catalog_links l
        JOIN whatsapp_catalogs c ON c.id = l.catalog_id
        WHERE l.listing_id = %s
        ORDER BY COALESCE(c.sort_order, %s), c.created_at
        """,
        (listing_id, UNORDERED),
    )
    return [
        {
            "catalog_id": str(row[0]),
            "catalog_name": row[1],
            "external_catalog_id": row[2],
            "product_id": row[3],
            "updated_at": row[4],
        }
        for row in cur.fetchall()
    ]


# ---------------------------------------------------------------------------
# Link writes
# ---------------------------------------------------------------------------


def _require_catalog(cur: PgCursor, catalog_id: str) -> WhatsAppCatalog:
    catalog = get_catalog(cur, catalog_id)
    if catalog is None:
        raise CatalogNotFoundError(f"catalog not found: {catalog_id}")
    return catalog


def link(
    cur: PgCursor, listing_id: str, catalog_id: str, product_id: str
) -> list[CatalogSyncJob]:
    """Create or update the (listing, catalog) link.

    Returns:
        A CREATE job when the link is new, UPDATE when it replaced the
        product id of an existing link.

    Raises:
        CatalogNotFoundError: If the catalog does not exist.
    """
    catalog = _require_catalog(cur, catalog_id)
    now = utc_now()

    # xmax = 0 only for freshly inserted rows
    cur.execute(
        """
        INSERT INTO property_catalog_links (listing_id, catalog_id, product_id, created_at, updated_at)
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (listing_id, catalog_id)
        DO UPDATE SET product_id = EXCLUDED.product_id, updated_at = EXCLUDED.updated_at
        RETURNING (xmax = 0) AS inserted
        """,
        (listing_id, catalog_id, product_id, now, now),
    )
    inserted = bool(cur.fetchone()[0])

    return [
        CatalogSyncJob(
            method="CREATE" if inserted else "UPDATE",
            listing_id=listing_id,
            external_catalog_id=catalog.external_catalog_id,
            product_id=product_id,
        )
    ]


def unlink(cur: PgCursor, listing_id: str, catalog_id: str) -> list[CatalogSyncJob]:
    """Remove the (listing, catalog) link. No-op when it does not exist."""
    cur.execute(
        """
        DELETE FROM property_catalog_links l
        USING whatsapp_catalogs c
        WHERE c.id = l.catalog_id AND l.listing_id = %s AND l.catalog_id = %s
        RETURNING c.external_catalog_id, l.product_id
        """,
        (listing_id, catalog_id),
    )
    row = cur.fetchone()
    if row is None:
        return []
    return [
        CatalogSyncJob(
            method="DELETE",
            listing_id=listing_id,
            external_catalog_id=row[0],
            product_id=row[1],
        )
    ]


def replace_all_links(
    cur: PgCursor, listing_id: str, entries: Sequence[dict[str, str]]
) -> list[CatalogSyncJob]:
    """Make `entries` the full set of catalog links of a listing.

    Only the difference with the current links is applied. A link kept
    with the same product id produces no job, so its remote item is never
    deleted and re-created by two independently ordered tasks.

    Args:
        cur: Database cursor (within transaction).
        listing_id: Listing whose links are replaced.
        entries: Items with `catalog_id` and `product_id`. Entries for
            unknown catalogs are skipped; for a repeated catalog the last
            entry wins.

    Returns:
        DELETE jobs for every removed (catalog, product id) pair followed by
        CREATE jobs for every added one. A changed product id yields both.
    """
    cur.execute(
        """
        SELECT l.catalog_id, c.external_catalog_id, l.product_id
        FROM property_catalog_links l
        JOIN whatsapp_catalogs c ON c.id = l.catalog_id
        WHERE l.listing_id = %s
        ORDER BY c.sort_order NULLS LAST, c.name
        FOR UPDATE OF l
        """,
        (listing_id,),
    )
    current = {str(row[0]): (row[1], row[2]) for row in cur.fetchall()}

    wanted: dict[str, tuple[str, str]] = {}
    for entry in entries:
        catalog = get_catalog(cur, entry["catalog_id"])
        if catalog is None:
            logger.warning(
                "skipping link to unknown catalog",
                extra={"extra_fields": safe_log_context(listing_id=listing_id)},
            )
            continue
        wanted[str(catalog.id)] = (catalog.external_catalog_id, entry["product_id"])

    dropped = [cid for cid in current if cid not in wanted]
    if dropped:
        cur.execute(
            """
            DELETE FROM property_catalog_links
            WHERE listing_id = %s AND catalog_id = ANY(%s::uuid[])
            """,
            (listing_id, dropped),
        )

    jobs = [
        CatalogSyncJob(
            method="DELETE",
            listing_id=listing_id,
            external_catalog_id=external_id,
            product_id=product_id,
        )
        for cid, (external_id, product_id) in current.items()
        if current[cid] != wanted.get(cid)
    ]

    now = utc_now()
    for cid, (external_id, product_id) in wanted.items():
        if current.get(cid) == (external_id, product_id):
            continue
        cur.execute(
            """
            INSERT INTO property_catalog_links (listing_id, catalog_id, product_id, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (listing_id, catalog_id)
            DO UPDATE SET product_id = EXCLUDED.product_id, updated_at = EXCLUDED.updated_at
            """,
            (listing_id, cid, product_id, now, now),
        )
        jobs.append(
            CatalogSyncJob(
                method="CREATE",
                listing_id=listing_id,
                external_catalog_id=external_id,
                product_id=product_id,
            )
        )

    return jobs


def remove_catalog(cur: PgCursor, catalog_id: str) -> int:
    """Delete a catalog and its links. Returns the number of links removed.

    Raises:
        CatalogNotFoundError: If the catalog does not exist.
    """
    _require_catalog(cur, catalog_id)
    cur.execute("DELETE FROM property_catalog_links WHERE catalog_id = %s", (catalog_id,))
    removed = cur.rowcount
    cur.execute("DELETE FROM whatsapp_catalogs WHERE id = %s", (catalog_id,))
    return removed


def upsert_catalogs_from_meta(cur: PgCursor, catalogs: Sequence[dict[str, str]]) -> int:
    """Create catalogs fetched from Meta; rename existing ones.

    New rows get `sort_order` = position in `catalogs` and the first one is
    flagged default. Returns the number of catalogs processed.
    """
    now = utc_now()
    for index, meta_catalog in enumerate(catalogs):
        cur.execute(
            """
            INSERT INTO whatsapp_catalogs
                (name, external_catalog_id, is_default, sort_order, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (external_catalog_id)
            DO UPDATE SET name = EXCLUDED.name, updated_at = EXCLUDED.updated_at
            WHERE whatsapp_catalogs.name IS DISTINCT FROM EXCLUDED.name
            """,
            (meta_catalog["name"], meta_catalog["id"], index == 0, index, now, now),
        )
    return len(catalogs)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def schedule_sync_jobs(jobs: Iterable[CatalogSyncJob], correlation_id: str | None = None) -> int:
    """Enqueue remote sync tasks for `jobs`. Returns how many were enqueued."""
    client = get_tasks_client()
    enqueued = 0
    for job in jobs:
        url_path = DELETE_ITEM_PATH if job.method == "DELETE" else SYNC_ITEM_PATH
        if client.enqueue_http(
            task_id=new_task_id(f"catalog-{job.method.lower()}"),
            url_path=url_path,
            payload=job.to_payload(),
            correlation_id=correlation_id,
        ):
            enqueued += 1
    return enqueued


def bulk_resync(listing_ids: Iterable[str], correlation_id: str | None = None) -> int:
    """Enqueue a full catalog re-push for each listing. Returns tasks enqueued."""
    client = get_tasks_client()
    enqueued = 0
    for listing_id in dict.fromkeys(listing_ids):
        if client.enqueue_http(
            task_id=new_task_id("catalog-resync"),
            url_path=RESYNC_LISTING_PATH,
            payload={"listing_id": listing_id},
            correlation_id=correlation_id,
        ):
            enqueued += 1
    return enqueued
