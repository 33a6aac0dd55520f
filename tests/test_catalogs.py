"""Tests for catalog selection, links and sync dispatch."""

from unittest.mock import patch

import pytest

from fincas.domain.catalogs import (
    DELETE_ITEM_PATH,
    RESYNC_LISTING_PATH,
    SYNC_ITEM_PATH,
    CatalogNotFoundError,
    CatalogSyncJob,
    ProductEntry,
    WhatsAppCatalog,
    bulk_resync,
    link,
    list_catalogs,
    listing_ids_in_any_catalog,
    product_ids_for_listings,
    remove_catalog,
    replace_all_links,
    resolve_catalog_for_location,
    schedule_sync_jobs,
    select_catalog_for_location,
    select_default_catalog,
    unlink,
    upsert_catalogs_from_meta,
)

from .helpers import catalog_row, executed_sql, make_cursor

LISTING = "11111111-1111-1111-1111-111111111111"
OTHER_LISTING = "22222222-2222-2222-2222-222222222222"

BOGOTA = WhatsAppCatalog(
    id="c-bog", name="Bogotá", external_catalog_id="meta-bog",
    is_default=True, location_keyword="bogota", sort_order=0,
)
TOLIMA = WhatsAppCatalog(
    id="c-tol", name="Tolima", external_catalog_id="meta-tol",
    location_keyword="tolima", sort_order=1,
)


class TestCatalogSelection:
    def test_keyword_contained_in_location(self):
        assert select_catalog_for_location([BOGOTA, TOLIMA], "Ibagué, Tolima") == TOLIMA

    def test_falls_back_to_default(self):
        assert select_catalog_for_location([TOLIMA, BOGOTA], "Girardot") == BOGOTA

    def test_same_answer_regardless_of_input_order(self):
        shared = WhatsAppCatalog(
            id="c-x", name="Tolima 2", external_catalog_id="meta-x",
            location_keyword="tolima", sort_order=5,
        )
        assert select_catalog_for_location([shared, TOLIMA], "tolima") == TOLIMA
        assert select_catalog_for_location([TOLIMA, shared], "tolima") == TOLIMA

    def test_default_without_flag_is_lowest_order(self):
        unordered = WhatsAppCatalog(id="c-u", name="U", external_catalog_id="meta-u")
        assert select_default_catalog([unordered, TOLIMA]) == TOLIMA

    def test_no_catalogs(self):
        assert select_default_catalog([]) is None
        assert select_catalog_for_location([], "melgar") is None

    def test_resolve_reads_catalogs(self):
        cur = make_cursor(fetchall=[[
            catalog_row("c-bog", "Bogotá", "meta-bog", True, "bogota", 0),
            catalog_row("c-tol", "Tolima", "meta-tol", False, "tolima", 1),
        ]])
        assert resolve_catalog_for_location(cur, "melgar tolima") == TOLIMA


class TestReads:
    def test_list_catalogs(self):
        cur = make_cursor(fetchall=[[catalog_row("c-bog", "Bogotá", "meta-bog", True, "bogota", 0)]])
        assert list_catalogs(cur) == [BOGOTA]

    def test_product_ids_follow_listing_order(self):
        cur = make_cursor(fetchall=[[(OTHER_LISTING, "P-2"), (LISTING, "P-1")]])
        result = product_ids_for_listings(cur, "c-bog", [LISTING, "missing", OTHER_LISTING])
        assert result == [
            ProductEntry(listing_id=LISTING, product_id="P-1"),
            ProductEntry(listing_id=OTHER_LISTING, product_id="P-2"),
        ]
        assert "ANY(%s::uuid[])" in executed_sql(cur)[0]

    def test_product_ids_empty_input(self):
        cur = make_cursor()
        assert product_ids_for_listings(cur, "c-bog", []) == []
        cur.execute.assert_not_called()

    def test_listing_ids_in_any_catalog(self):
        cur = make_cursor(fetchall=[[(LISTING,)]])
        assert listing_ids_in_any_catalog(cur, [LISTING, OTHER_LISTING]) == {LISTING}
        assert listing_ids_in_any_catalog(make_cursor(), []) == set()


class TestLinkWrites:
    def test_link_new_is_create(self):
        cur = make_cursor(fetchone=[catalog_row("c-tol", "Tolima", "meta-tol"), (True,)])
        jobs = link(cur, LISTING, "c-tol", "VG-01")
        assert jobs == [CatalogSyncJob("CREATE", LISTING, "meta-tol", "VG-01")]

    def test_link_existing_is_update(self):
        cur = make_cursor(fetchone=[catalog_row("c-tol", "Tolima", "meta-tol"), (False,)])
        jobs = link(cur, LISTING, "c-tol", "VG-02")
        assert jobs[0].method == "UPDATE"
        assert jobs[0].product_id == "VG-02"

    def test_link_unknown_catalog(self):
        cur = make_cursor(fetchone=[None])
        with pytest.raises(CatalogNotFoundError):
            link(cur, LISTING, "nope", "VG-01")

    def test_unlink(self):
        cur = make_cursor(fetchone=[("meta-tol", "VG-01")])
        assert unlink(cur, LISTING, "c-tol") == [CatalogSyncJob("DELETE", LISTING, "meta-tol", "VG-01")]

    def test_unlink_not_linked_is_noop(self):
        cur = make_cursor(fetchone=[None])
        assert unlink(cur, LISTING, "c-tol") == []

    def test_replace_with_empty_removes_every_link(self, inline_tasks):
        cur = make_cursor(fetchall=[[("c-bog", "meta-bog", "VG-01"), ("c-tol", "meta-tol", "VG-01")]])
        jobs = replace_all_links(cur, LISTING, [])

        assert [j.method for j in jobs] == ["DELETE", "DELETE"]
        assert schedule_sync_jobs(jobs) == 2
        tasks = inline_tasks.get_scheduled_tasks(DELETE_ITEM_PATH)
        assert [t["payload"]["external_catalog_id"] for t in tasks] == ["meta-bog", "meta-tol"]
        assert inline_tasks.get_scheduled_tasks(SYNC_ITEM_PATH) == []
        delete_sql = [s for s in executed_sql(cur) if s.startswith("DELETE FROM property_catalog_links")]
        assert len(delete_sql) == 1
        assert cur.execute.call_args_list[1].args[1] == (LISTING, ["c-bog", "c-tol"])

    def test_replace_creates_new_links_and_skips_unknown(self):
        cur = make_cursor(
            fetchall=[[("c-bog", "meta-bog", "OLD")]],
            fetchone=[catalog_row("c-tol", "Tolima", "meta-tol"), None],
        )
        jobs = replace_all_links(cur, LISTING, [
            {"catalog_id": "c-tol", "product_id": "NEW"},
            {"catalog_id": "gone", "product_id": "X"},
        ])
        assert jobs == [
            CatalogSyncJob("DELETE", LISTING, "meta-bog", "OLD"),
            CatalogSyncJob("CREATE", LISTING, "meta-tol", "NEW"),
        ]

    def test_replace_keeps_unchanged_link_without_jobs(self):
        cur = make_cursor(
            fetchall=[[("c-tol", "meta-tol", "P1")]],
            fetchone=[catalog_row("c-tol", "Tolima", "meta-tol")],
        )
        jobs = replace_all_links(cur, LISTING, [{"catalog_id": "c-tol", "product_id": "P1"}])

        assert jobs == []
        sql = executed_sql(cur)
        assert not any(s.startswith("DELETE") for s in sql)
        assert not any(s.startswith("INSERT") for s in sql)

    def test_replace_mixed_set_only_touches_differences(self):
        cur = make_cursor(
            fetchall=[[("c-bog", "meta-bog", "P1"), ("c-tol", "meta-tol", "OLD")]],
            fetchone=[
                catalog_row("c-bog", "Bogotá", "meta-bog", is_default=True),
                catalog_row("c-tol", "Tolima", "meta-tol"),
            ],
        )
        jobs = replace_all_links(cur, LISTING, [
            {"catalog_id": "c-bog", "product_id": "P1"},
            {"catalog_id": "c-tol", "product_id": "NEW"},
        ])

        assert jobs == [
            CatalogSyncJob("DELETE", LISTING, "meta-tol", "OLD"),
            CatalogSyncJob("CREATE", LISTING, "meta-tol", "NEW"),
        ]
        sql = executed_sql(cur)
        assert not any(s.startswith("DELETE") for s in sql)
        assert sum(s.startswith("INSERT") for s in sql) == 1

    def test_remove_catalog(self):
        cur = make_cursor(fetchone=[catalog_row("c-tol", "Tolima", "meta-tol")], rowcount=3)
        assert remove_catalog(cur, "c-tol") == 3
        sql = executed_sql(cur)
        assert sql[1].startswith("DELETE FROM property_catalog_links")
        assert sql[2].startswith("DELETE FROM whatsapp_catalogs")

    def test_remove_unknown_catalog(self):
        with pytest.raises(CatalogNotFoundError):
            remove_catalog(make_cursor(fetchone=[None]), "nope")

    def test_upsert_from_meta_first_is_default(self):
        cur = make_cursor()
        processed = upsert_catalogs_from_meta(cur, [
            {"id": "meta-1", "name": "Principal"},
            {"id": "meta-2", "name": "Tolima"},
        ])
        assert processed == 2
        first, second = (call.args[1] for call in cur.execute.call_args_list)
        assert first[:4] == ("Principal", "meta-1", True, 0)
        assert second[:4] == ("Tolima", "meta-2", False, 1)


class TestDispatch:
    def test_sync_jobs_routed_by_method(self, inline_tasks):
        jobs = [
            CatalogSyncJob("CREATE", LISTING, "meta-tol", "VG-01"),
            CatalogSyncJob("DELETE", LISTING, "meta-bog", "VG-01"),
        ]
        assert schedule_sync_jobs(jobs, correlation_id="cid") == 2

        sync_task = inline_tasks.get_scheduled_tasks(SYNC_ITEM_PATH)[0]
        assert sync_task["payload"] == {
            "method": "CREATE",
            "listing_id": LISTING,
            "external_catalog_id": "meta-tol",
            "product_id": "VG-01",
        }
        assert sync_task["correlation_id"] == "cid"
        assert sync_task["task_id"].startswith("catalog-create:")
        assert len(inline_tasks.get_scheduled_tasks(DELETE_ITEM_PATH)) == 1

    def test_bulk_resync_dedupes_listings(self, inline_tasks):
        assert bulk_resync([LISTING, OTHER_LISTING, LISTING]) == 2
        payloads = [t["payload"] for t in inline_tasks.get_scheduled_tasks(RESYNC_LISTING_PATH)]
        assert payloads == [{"listing_id": LISTING}, {"listing_id": OTHER_LISTING}]

    def test_refused_tasks_not_counted(self):
        with patch("fincas.domain.catalogs.get_tasks_client") as mock_client:
            mock_client.return_value.enqueue_http.return_value = False
            assert bulk_resync([LISTING]) == 0
