"""Meta Graph API client for WhatsApp product catalogs.

Listings are pushed to Meta catalogs as PRODUCT_ITEM entries through the
`items_batch` endpoint, one item per request. The catalog itself is read
with `GET /{catalog_id}?fields=id,name`.
"""

import os
from typing import Any, Literal

import requests

from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

logger = get_logger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com/v19.0"

HTTP_TIMEOUT = 15

DEFAULT_PRODUCT_BASE_URL = "https://fincasya.cloud"

# Meta rejects longer descriptions
MAX_DESCRIPTION_LENGTH = 5000

ItemMethod = Literal["CREATE", "UPDATE", "DELETE"]


class CatalogSyncError(Exception):
    """Meta rejected a catalog request (HTTP error or item validation error)."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


def get_access_token() -> str | None:
    """META_CATALOG_ACCESS_TOKEN, or None when unset."""
    return os.environ.get("META_CATALOG_ACCESS_TOKEN") or None


def product_base_url() -> str:
    base = (
        os.environ.get("CATALOG_PRODUCT_BASE_URL")
        or os.environ.get("SITE_URL")
        or DEFAULT_PRODUCT_BASE_URL
    )
    return base.rstrip("/")


def _cop(amount: int | float) -> str:
    value = int(amount) if float(amount).is_integer() else amount
    return f"{value} COP"


def build_product_payload(listing: dict[str, Any], retailer_id: str) -> dict[str, Any]:
    """Build the Meta product `data` object for a listing.

    `sale_price` is only included for a real discount: a positive low-season
    price strictly below the base price.
    """
    price = listing.get("price_base") or 0
    name = (listing.get("title") or "").strip() or "Finca"
    url = f"{product_base_url()}/fincas/{listing.get('id') or retailer_id}"

    payload: dict[str, Any] = {
        "id": retailer_id,
        "name": name,
        "title": name,
        "description": (listing.get("description") or "")[:MAX_DESCRIPTION_LENGTH],
        "price": _cop(price),
        "availability": "in stock",
        "brand": "Finca",
        "condition": "new",
        "url": url,
        "link": url,
    }

    images = [img for img in (listing.get("images") or []) if img]
    if images:
        payload["image"] = [{"url": img, "tag": []} for img in images]

    if listing.get("video"):
        payload["video"] = [{"url": listing["video"], "tag": []}]

    sale_price = listing.get("price_baja")
    if sale_price is not None and 0 < sale_price < price:
        payload["sale_price"] = _cop(sale_price)

    return payload


def _check_validation_status(data: dict[str, Any]) -> None:
    for status in data.get("validation_status") or []:
        errors = status.get("errors") or []
        if errors:
            messages = "; ".join(str(e.get("message", "")) for e in errors)
            raise CatalogSyncError(
                f"Meta rejected product {status.get('retailer_id')}: {messages}"
            )


def push_item(
    *,
    catalog_id: str,
    retailer_id: str,
    method: ItemMethod,
    data: dict[str, Any] | None = None,
    access_token: str,
) -> dict[str, Any]:
    """Send one CREATE/UPDATE/DELETE request to a catalog's items_batch.

    Args:
        catalog_id: Meta catalog id.
        retailer_id: Product retailer id inside the catalog.
        method: Batch method.
        data: Product payload (required for CREATE/UPDATE).
        access_token: Graph API token.

    Returns:
        Parsed Graph response.

    Raises:
        CatalogSyncError: On non-2xx responses or item validation errors.
    """
    request: dict[str, Any] = {"method": method, "retailer_id": retailer_id}
    if method != "DELETE":
        request["data"] = data or {}

    body = {
        "item_type": "PRODUCT_ITEM",
        "allow_upsert": method == "UPDATE",
        "requests": [request],
    }

    response = requests.post(
        f"{GRAPH_API_BASE}/{catalog_id}/items_batch",
        json=body,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=HTTP_TIMEOUT,
    )
    if not response.ok:
        logger.error(
            "meta items_batch error",
            extra={
                "extra_fields": safe_log_context(
                    catalog_id=catalog_id, method=method, status=response.status_code
                )
            },
        )
        raise CatalogSyncError(
            f"Meta catalog sync failed for catalog {catalog_id}: "
            f"{response.status_code} {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    result = response.json() if response.content else {}
    _check_validation_status(result)
    return result


def fetch_catalog(catalog_id: str, *, access_token: str) -> dict[str, Any]:
    """Read a catalog's id and name from Meta.

    Raises:
        CatalogSyncError: On non-2xx responses.
    """
    response = requests.get(
        f"{GRAPH_API_BASE}/{catalog_id}",
        params={"fields": "id,name"},
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=HTTP_TIMEOUT,
    )
    if not response.ok:
        raise CatalogSyncError(
            f"Meta API error: {response.status_code} - {response.text}",
            status_code=response.status_code,
            body=response.text,
        )
    return response.json()
