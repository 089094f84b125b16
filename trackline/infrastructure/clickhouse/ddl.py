from trackline.services.retention import RetentionPolicy

# Duplicates from redelivery share event_id (and therefore the whole sorting
# key), so ReplacingMergeTree collapses them on merge.
EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    event_id UUID,
    tenant_id String,
    tracking_id String,
    session_id String,
    event_type LowCardinality(String),
    timestamp DateTime64(3, 'UTC'),
    received_at DateTime64(3, 'UTC'),
    data String,
    ip String,
    user_agent String,
    browser LowCardinality(String),
    os LowCardinality(String),
    device LowCardinality(String),
    is_bot UInt8,
    country LowCardinality(String),
    city String,
    region String
) ENGINE = ReplacingMergeTree()
PARTITION BY toYYYYMM(timestamp)
ORDER BY (tenant_id, session_id, timestamp, event_id)
{ttl}
"""

EVENT_COLUMNS = (
    "event_id",
    "tenant_id",
    "tracking_id",
    "session_id",
    "event_type",
    "timestamp",
    "received_at",
    "data",
    "ip",
    "user_agent",
    "browser",
    "os",
    "device",
    "is_bot",
    "country",
    "city",
    "region",
)


def events_ddl(table: str, retention: RetentionPolicy) -> str:
    return EVENTS_DDL.format(table=table, ttl=retention.event_ttl_clause("timestamp"))
