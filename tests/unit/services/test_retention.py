import pytest

from trackline.core.config import Settings
from trackline.services.retention import DAY_MS, RetentionPolicy


def test_defaults_match_the_retention_horizons():
    policy = RetentionPolicy()
    assert policy.event_ttl_days == 30
    assert policy.session_ttl_days == 90


def test_event_ttl_clause():
    clause = RetentionPolicy(event_ttl_days=30).event_ttl_clause("timestamp")
    assert clause == "TTL toDateTime(timestamp) + INTERVAL 30 DAY DELETE"


def test_session_expiry_counts_from_start_time():
    start = 2_000_000_000_000
    assert RetentionPolicy().session_expiry_ms(start, now=start - 10) == start + 90 * DAY_MS


def test_session_expiry_never_lands_in_the_past():
    now = 1_700_000_000_000
    assert RetentionPolicy(session_ttl_days=1).session_expiry_ms(0, now) == now + DAY_MS


@pytest.mark.parametrize("events, sessions", [(0, 90), (30, 0), (-1, 5)])
def test_horizons_must_be_positive(events, sessions):
    with pytest.raises(ValueError):
        RetentionPolicy(event_ttl_days=events, session_ttl_days=sessions)


def test_from_settings():
    settings = Settings(retention_event_days=7, retention_session_days=14)
    policy = RetentionPolicy.from_settings(settings)
    assert (policy.event_ttl_days, policy.session_ttl_days) == (7, 14)
