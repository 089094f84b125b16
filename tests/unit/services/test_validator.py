"""Unit tests for record validation and sanitisation."""

import math
from datetime import datetime, timezone

import pytest

from trackline.core.errors import EventRejected
from trackline.schemas.events import EventType
from trackline.schemas.wire import (
    MAX_CLICK_TEXT_LENGTH,
    MAX_TIMESTAMP_MS,
    MAX_URL_LENGTH,
    cap_map,
    normalize_timestamp,
)
from trackline.services.validator import validate_event

NOW = 1_700_000_000_000


def _raw(**overrides):
    raw = {"tenantId": "T1", "sessionId": "S1", "type": "pageview", "timestamp": 1000}
    raw.update(overrides)
    return raw


class TestRequiredFields:
    def test_valid_pageview_flat_fields(self):
        event = validate_event(
            _raw(url="https://example.com/a", title="A", referrer="https://google.com"),
            now=NOW,
        )
        assert event.tracking_id == "T1"
        assert event.session_id == "S1"
        assert event.type is EventType.PAGEVIEW
        assert event.timestamp == 1000
        assert event.data.page.url == "https://example.com/a"
        assert event.data.page.referrer == "https://google.com"

    def test_nested_page_object(self):
        event = validate_event(_raw(page={"url": "/b", "title": "B"}), now=NOW)
        assert event.data.page.url == "/b"
        assert event.data.page.title == "B"

    def test_project_id_is_accepted_for_tenant_id(self):
        raw = _raw()
        raw.pop("tenantId")
        raw["projectId"] = "P9"
        assert validate_event(raw, now=NOW).tracking_id == "P9"

    @pytest.mark.parametrize(
        "missing, reason",
        [("tenantId", "missing tenantId"), ("sessionId", "missing sessionId")],
    )
    def test_missing_identifier_is_rejected(self, missing, reason):
        raw = _raw()
        raw.pop(missing)
        with pytest.raises(EventRejected) as exc:
            validate_event(raw, now=NOW)
        assert exc.value.reason == reason

    @pytest.mark.parametrize("value", ["   ", {"id": "S1"}, ["S1"], True, None])
    def test_unusable_session_id_is_rejected(self, value):
        with pytest.raises(EventRejected) as exc:
            validate_event(_raw(sessionId=value), now=NOW)
        assert exc.value.reason == "missing sessionId"

    def test_numeric_identifiers_become_strings(self):
        event = validate_event(_raw(tenantId=42, sessionId=7), now=NOW)
        assert (event.tracking_id, event.session_id) == ("42", "7")

    def test_nested_page_cannot_change_the_type(self):
        event = validate_event(_raw(page={"url": "/p", "type": "click"}), now=NOW)
        assert event.type is EventType.PAGEVIEW
        assert event.data.page.url == "/p"

    def test_unknown_type_is_rejected(self):
        with pytest.raises(EventRejected) as exc:
            validate_event(_raw(type="hover"), now=NOW)
        assert "unknown type" in exc.value.reason

    def test_missing_type_is_rejected(self):
        raw = _raw()
        raw.pop("type")
        with pytest.raises(EventRejected):
            validate_event(raw, now=NOW)

    @pytest.mark.parametrize("raw", [None, "pageview", 42, ["T1"]])
    def test_non_object_is_rejected(self, raw):
        with pytest.raises(EventRejected) as exc:
            validate_event(raw, now=NOW)
        assert exc.value.reason == "not an object"

    def test_type_is_case_insensitive(self):
        assert validate_event(_raw(type="Click"), now=NOW).type is EventType.CLICK

    def test_ids_are_capped(self):
        event = validate_event(_raw(sessionId="s" * 500), now=NOW)
        assert len(event.session_id) == 128


class TestTimestamp:
    def test_malformed_timestamp_becomes_now(self):
        event = validate_event(_raw(timestamp="yesterday-ish"), now=NOW)
        assert event.timestamp == NOW

    def test_missing_timestamp_becomes_now(self):
        raw = _raw()
        raw.pop("timestamp")
        assert validate_event(raw, now=NOW).timestamp == NOW

    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, 0),
            (500, 500),
            (1_700_000_000_123, 1_700_000_000_123),
            (1_700_000_000, 1_700_000_000_000),
            (1_700_000_000.5, 1_700_000_000_500),
            ("1500", 1500),
            ("2024-01-01T00:00:00Z", 1_704_067_200_000),
            ("2024-01-01T00:00:00", 1_704_067_200_000),
            ("2024-01-01T02:00:00+02:00", 1_704_067_200_000),
            (datetime(2024, 1, 1, tzinfo=timezone.utc), 1_704_067_200_000),
        ],
    )
    def test_accepted_forms(self, value, expected):
        assert normalize_timestamp(value, NOW) == expected

    @pytest.mark.parametrize(
        "value", [None, True, -5, math.nan, math.inf, "", "   ", {"t": 1}, 10**20]
    )
    def test_unusable_values_become_now(self, value):
        assert normalize_timestamp(value, NOW) == NOW

    @pytest.mark.parametrize("value", [10**400, -(10**400), "1" + "0" * 400, "1e400"])
    def test_numbers_beyond_float_range_become_now(self, value):
        assert normalize_timestamp(value, NOW) == NOW
        assert validate_event(_raw(timestamp=value), now=NOW).timestamp == NOW

    @pytest.mark.parametrize(
        "value",
        [
            "9999-12-31T23:59:59-12:00",
            "2200-01-01T00:00:00Z",
            "1969-12-31T23:59:59Z",
            datetime(2300, 1, 1, tzinfo=timezone.utc),
            5_000_000_000,
            MAX_TIMESTAMP_MS + 1,
        ],
    )
    def test_instants_outside_storable_range_become_now(self, value):
        assert normalize_timestamp(value, NOW) == NOW

    def test_last_storable_instant_is_kept(self):
        assert normalize_timestamp(MAX_TIMESTAMP_MS, NOW) == MAX_TIMESTAMP_MS
        assert normalize_timestamp("2106-02-07T06:28:15Z", NOW) == MAX_TIMESTAMP_MS


class TestBounds:
    def test_long_url_is_truncated(self):
        event = validate_event(_raw(url="https://e.com/" + "x" * 5000), now=NOW)
        assert len(event.data.page.url) == MAX_URL_LENGTH

    def test_click_element_and_position(self):
        event = validate_event(
            _raw(
                type="click",
                element={"tag": "button", "id": "buy", "class": "btn", "text": "t" * 300},
                position={"x": -20, "y": 250_000},
            ),
            now=NOW,
        )
        assert event.data.element.tag == "button"
        assert event.data.element.class_name == "btn"
        assert len(event.data.element.text) == MAX_CLICK_TEXT_LENGTH
        assert event.data.position.x == 0
        assert event.data.position.y == 100_000

    def test_click_element_given_as_text(self):
        event = validate_event(_raw(type="click", element="Buy now"), now=NOW)
        assert event.data.element.text == "Buy now"
        assert event.data.position is None

    @pytest.mark.parametrize(
        "depth, expected", [(150, 100), (-5, 0), ("42", 42), ("deep", 0), (None, 0)]
    )
    def test_scroll_depth_is_clamped(self, depth, expected):
        event = validate_event(_raw(type="scroll", depth=depth), now=NOW)
        assert event.data.depth == expected

    def test_route_flat_and_nested(self):
        flat = validate_event(_raw(type="route", **{"from": "/a", "to": "/b"}), now=NOW)
        nested = validate_event(
            _raw(type="route", route={"from": "/a", "to": "/b"}), now=NOW
        )
        assert flat.data.route == nested.data.route
        assert flat.data.route.from_url == "/a"
        assert flat.data.route.to_url == "/b"


class TestCustom:
    def test_event_is_a_legacy_spelling_of_custom(self):
        event = validate_event(
            _raw(type="event", name="signup", properties={"plan": "pro"}, campaign="spring"),
            now=NOW,
        )
        assert event.type is EventType.CUSTOM
        assert event.data.name == "signup"
        assert event.data.properties == {"plan": "pro"}
        assert event.data.payload == {"campaign": "spring"}

    def test_non_mapping_properties_become_empty(self):
        event = validate_event(_raw(type="custom", properties=["a"]), now=NOW)
        assert event.data.properties == {}

    def test_cap_map_limits_key_count(self):
        capped = cap_map({f"k{i}": i for i in range(60)})
        assert len(capped) == 50
        assert "k0" in capped and "k59" not in capped

    def test_cap_map_drops_from_the_end_until_it_fits(self):
        capped = cap_map({"a": "x" * 5000, "b": "y" * 5000})
        assert list(capped) == ["a"]
