"""Tests for the raw-SQL repositories."""

from datetime import datetime, timezone

from fincas.infra.repositories.knowledge_repository import search_knowledge
from fincas.infra.repositories.listings_repository import (
    get_listing,
    search_available_by_location_and_dates,
    search_listings,
)
from fincas.infra.repositories.processed_events_repository import (
    SOURCE_YCLOUD,
    record_processed_event,
)

from .helpers import make_cursor

ROW = (
    "11111111-1111-1111-1111-111111111111", "Villa Green", "Piscina", "Melgar",
    20, "finca", 800000, 600000, None, None,
)


class TestProcessedEvents:
    def test_first_time(self):
        cur = make_cursor(rowcount=1)
        assert record_processed_event(cur, SOURCE_YCLOUD, "evt_1") is True
        assert cur.execute.call_args.args[1][:2] == ("ycloud", "evt_1")

    def test_duplicate(self):
        assert record_processed_event(make_cursor(rowcount=0), SOURCE_YCLOUD, "evt_1") is False


class TestListings:
    def test_get_listing_maps_row(self):
        listing = get_listing(make_cursor(fetchone=[ROW]), ROW[0])
        assert listing["title"] == "Villa Green"
        assert listing["price_baja"] == 600000
        assert listing["images"] == []

    def test_get_missing(self):
        assert get_listing(make_cursor(fetchone=[None]), "x") is None

    def test_search_blank_query_skips_db(self):
        cur = make_cursor()
        assert search_listings(cur, "   ") == []
        cur.execute.assert_not_called()

    def test_search_params(self):
        cur = make_cursor(fetchall=[[ROW]])
        assert [r["id"] for r in search_listings(cur, " villa green ", limit=5)] == [ROW[0]]
        assert cur.execute.call_args.args[1] == (
            "%villa green%", "villa green", "%villa green%", "villa green", 5,
        )

    def test_availability_params(self):
        cur = make_cursor(fetchall=[[]])
        entry = datetime(2026, 3, 20, tzinfo=timezone.utc)
        exit = datetime(2026, 3, 22, tzinfo=timezone.utc)
        assert search_available_by_location_and_dates(
            cur, location="restrepo", entry=entry, exit=exit
        ) == []
        # overlap test compares booking start with exit and booking end with entry
        assert cur.execute.call_args.args[1] == ("%restrepo%", exit, entry, 4)


class TestKnowledge:
    def test_search(self):
        cur = make_cursor(fetchall=[[("Check-in 3pm",), ("Mascotas permitidas",)]])
        assert search_knowledge(cur, "check in", limit=2) == ["Check-in 3pm", "Mascotas permitidas"]

    def test_blank_query(self):
        assert search_knowledge(make_cursor(), "") == []
