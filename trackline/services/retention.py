"""Fixed retention horizons for raw events and sessions.

Nothing here deletes data. The policy is rendered into store-native expiry:
a ClickHouse ``TTL`` clause for raw events and a Redis ``PEXPIREAT`` deadline
stamped on a session when it is created.
"""

from __future__ import annotations

from dataclasses import dataclass

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class RetentionPolicy:
    event_ttl_days: int = 30
    session_ttl_days: int = 90

    def __post_init__(self):
        if self.event_ttl_days <= 0 or self.session_ttl_days <= 0:
            raise ValueError("retention horizons must be positive")

    def event_ttl_clause(self, column: str = "timestamp") -> str:
        return f"TTL toDateTime({column}) + INTERVAL {self.event_ttl_days} DAY DELETE"

    def session_expiry_ms(self, start_time: int, now: int) -> int:
        """Absolute deadline for a session created now with ``start_time``.

        The horizon counts from the later of the two, so a client clock far in
        the past cannot make a brand new session expire on creation.
        """
        return max(start_time, now) + self.session_ttl_days * DAY_MS

    @classmethod
    def from_settings(cls, settings) -> "RetentionPolicy":
        return cls(
            event_ttl_days=settings.retention_event_days,
            session_ttl_days=settings.retention_session_days,
        )
