import pytest

from shared.metrics import get_counter
from trackline.core import metrics


def test_metric_names_are_prefixed():
    assert metrics.INGEST_REQUESTS._name == "trackline_ingest_requests"
    assert metrics.EVENTS_SKIPPED._labelnames == ("reason",)


def test_invalid_metric_name_is_rejected():
    with pytest.raises(ValueError):
        get_counter("Bad-Name", "doc")


def test_counter_helper_keeps_existing_prefix():
    counter = get_counter("unit_probe_total", "probe", "unit", ["path"])
    counter.labels(path="queue").inc()
    assert counter._name == "unit_probe"
    assert counter._labelnames == ("path",)
