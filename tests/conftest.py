import fakeredis
import fakeredis.aioredis
import pytest

from trackline.schemas.events import EnrichedEvent, UserSnapshot
from trackline.services.validator import validate_event

INGEST_TIME = 1_700_000_000_000

DESKTOP_USER = UserSnapshot(
    ip="203.0.113.7",
    user_agent="Mozilla/5.0 (X11; Linux x86_64; rv:126.0) Gecko/20100101 Firefox/126.0",
    browser="Firefox",
    os="Linux",
    device="desktop",
    is_bot=False,
    country="Norway",
    city="Oslo",
    region="Oslo",
)


def make_event(
    event_type: str = "pageview",
    session_id: str = "S1",
    timestamp=1000,
    tracking_id: str = "T1",
    tenant_id: str = "tenant-1",
    user: UserSnapshot = DESKTOP_USER,
    **fields,
) -> EnrichedEvent:
    raw = {
        "tenantId": tracking_id,
        "sessionId": session_id,
        "type": event_type,
        "timestamp": timestamp,
        **fields,
    }
    return EnrichedEvent.from_canonical(
        validate_event(raw, now=INGEST_TIME),
        tenant_id=tenant_id,
        user=user,
        received_at=INGEST_TIME,
    )


@pytest.fixture
def event_factory():
    """Build an EnrichedEvent the way the ingestion path would."""
    return make_event


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(fake_server):
    return fakeredis.aioredis.FakeRedis(server=fake_server, decode_responses=True)
