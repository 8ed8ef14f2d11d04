from config import LookupPolicy
from tracking import (
    build_fulfillment_entries, extract_tracking_entries, fulfillment_status,
    is_preferred_status, pick_primary_tracking_number, select_tracking,
    to_token, to_token_set
)
from utils import normalize_tracking_url


class TestNormalizeTrackingUrl:

    def test_adds_https_when_protocol_missing(self):
        assert normalize_tracking_url("track.example.com/123") == "https://track.example.com/123"

    def test_keeps_http(self):
        assert normalize_tracking_url("http://track.example.com/1") == "http://track.example.com/1"

    def test_takes_first_token(self):
        assert normalize_tracking_url(" a.example.com/1, b.example.com/2") == "https://a.example.com/1"
        assert normalize_tracking_url("a.example.com/1 b.example.com/2") == "https://a.example.com/1"

    def test_empty_and_invalid(self):
        assert normalize_tracking_url(None) == ""
        assert normalize_tracking_url("   ") == ""
        assert normalize_tracking_url("https://") == ""
        assert normalize_tracking_url("example.com:notaport/x") == ""

    def test_idempotent(self):
        once = normalize_tracking_url("track.example.com/123")
        assert normalize_tracking_url(once) == once


def test_to_token():
    assert to_token("  ab 12 ") == "AB12"
    assert to_token(None) == ""
    assert to_token(12345) == "12345"


def test_to_token_set_splits_multi_value_fields():
    assert to_token_set("a1, b2 / c3;d4|e5") == {"A1", "B2", "C3", "D4", "E5"}
    assert to_token_set(["x1", None, "y2 z3"]) == {"X1", "Y2", "Z3"}
    assert to_token_set(None) == set()


class TestExtractTrackingEntries:

    def test_graphql_tracking_info_list(self):
        fulfillment = {
            'trackingInfo': [
                {'number': "JT1", 'url': "jt.example.com/JT1", 'company': "J&T"},
                {'number': "JT2", 'url': "", 'company': None},
            ]
        }
        entries = extract_tracking_entries(fulfillment)
        assert [(e.number, e.url, e.company) for e in entries] == [
            ("JT1", "https://jt.example.com/JT1", "J&T"),
            ("JT2", "", ""),
        ]

    def test_single_tracking_info_object_uses_fallback_company(self):
        fulfillment = {
            'tracking_company': "Estafeta",
            'tracking_info': {'number': "E1", 'url': "https://estafeta.example.com/E1"},
        }
        entries = extract_tracking_entries(fulfillment)
        assert len(entries) == 1
        assert entries[0].company == "Estafeta"

    def test_rest_parallel_lists(self):
        fulfillment = {
            'tracking_numbers': ["N1", "N2"],
            'tracking_urls': ["https://t.example.com/N1", "https://t.example.com/N2"],
        }
        entries = extract_tracking_entries(fulfillment)
        assert [(e.number, e.url) for e in entries] == [
            ("N1", "https://t.example.com/N1"),
            ("N2", "https://t.example.com/N2"),
        ]

    def test_ragged_lists_repeat_first_value(self):
        fulfillment = {
            'tracking_numbers': ["N1", "N2", "N3"],
            'tracking_url': "https://t.example.com/all",
        }
        entries = extract_tracking_entries(fulfillment)
        assert [e.url for e in entries] == ["https://t.example.com/all"] * 3
        assert [e.number for e in entries] == ["N1", "N2", "N3"]

    def test_shorter_url_list_reuses_first_url(self):
        entries = extract_tracking_entries({'tracking_numbers': ["A", "B"], 'tracking_urls': ["http://x"]})
        assert [(e.number, e.url) for e in entries] == [("A", "http://x"), ("B", "http://x")]

    def test_tracking_info_wins_over_direct_fields(self):
        fulfillment = {
            'tracking_number': "DIRECT",
            'tracking_info': [{'number': "INFO", 'url': "https://t.example.com/INFO"}],
        }
        assert [e.number for e in extract_tracking_entries(fulfillment)] == ["INFO"]

    def test_empty_fulfillment(self):
        assert extract_tracking_entries({}) == []
        assert extract_tracking_entries(None) == []


def test_pick_primary_tracking_number():
    assert pick_primary_tracking_number({'trackingInfo': [{'number': "", 'url': "https://x.example.com"}, {'number': "B"}]}) == "B"
    assert pick_primary_tracking_number({'tracking_numbers': ["", "N2"]}) == "N2"
    assert pick_primary_tracking_number({}) == ""


def test_fulfillment_status_joins_status_fields():
    assert fulfillment_status({'status': "SUCCESS", 'shipment_status': "in_transit"}) == "success in_transit"
    assert fulfillment_status({'displayStatus': "DELIVERED"}) == "delivered"
    assert fulfillment_status({}) == ""


def test_build_fulfillment_entries_skips_entries_without_url():
    fulfillments = [
        {'status': "success", 'tracking_number': "A1"},
        {'status': "success", 'tracking_number': "B1, B2", 'tracking_url': "t.example.com/B"},
    ]
    entries = build_fulfillment_entries(fulfillments)
    assert len(entries) == 1
    assert entries[0].position == 1
    assert entries[0].tracking_url == "https://t.example.com/B"
    assert entries[0].tokens == {"B1", "B2"}


def test_is_preferred_status():
    policy = LookupPolicy()
    assert is_preferred_status("success", policy)
    assert is_preferred_status("label_printed out_for_delivery", policy)
    assert not is_preferred_status("cancelled", policy)
    assert not is_preferred_status("", policy)
    # word match, not substring
    assert not is_preferred_status("reopened", policy)


class TestSelectTracking:

    def _entries(self, *fulfillments):
        return build_fulfillment_entries(list(fulfillments))

    def test_token_and_status_match_wins(self):
        entries = self._entries(
            {'status': "success", 'tracking_number': "A1", 'tracking_url': "https://t.example.com/A1"},
            {'status': "cancelled", 'tracking_number': "A1", 'tracking_url': "https://t.example.com/A1-old"},
            {'status': "success", 'tracking_number': "Z9", 'tracking_url': "https://t.example.com/Z9"},
        )
        selection = select_tracking(entries, "a1")
        assert selection.rule == "token_and_status"
        assert selection.tracking_url == "https://t.example.com/A1"
        assert selection.fulfillment_number == "A1"

    def test_token_match_without_preferred_status(self):
        entries = self._entries(
            {'status': "cancelled", 'tracking_number': "A1", 'tracking_url': "https://t.example.com/A1"},
            {'status': "pending", 'tracking_number': "Z9", 'tracking_url': "https://t.example.com/Z9"},
        )
        selection = select_tracking(entries, "A1")
        assert selection.rule == "token"
        assert selection.tracking_url == "https://t.example.com/A1"

    def test_status_rule_picks_newest_preferred(self):
        entries = self._entries(
            {'status': "success", 'tracking_number': "A1", 'tracking_url': "https://t.example.com/A1"},
            {'status': "success", 'tracking_number': "B1", 'tracking_url': "https://t.example.com/B1"},
            {'status': "cancelled", 'tracking_number': "C1", 'tracking_url': "https://t.example.com/C1"},
        )
        selection = select_tracking(entries, "NOPE")
        assert selection.rule == "status"
        assert selection.fulfillment_number == "B1"

    def test_latest_fallback(self):
        entries = self._entries(
            {'status': "cancelled", 'tracking_url': "https://t.example.com/1"},
            {'status': "failure", 'tracking_url': "https://t.example.com/2"},
        )
        selection = select_tracking(entries, "OLD1")
        assert selection.rule == "latest"
        assert selection.tracking_url == "https://t.example.com/2"
        # no tracking number on the carrier side keeps the number on file
        assert selection.fulfillment_number == "OLD1"

    def test_no_entries(self):
        selection = select_tracking([], "A1")
        assert selection.tracking_url == ""
        assert selection.rule == ""
