"""Browser / OS / device classification from a user-agent string."""

from __future__ import annotations

from dataclasses import dataclass

from user_agents import parse

from trackline.core.logger import get_logger
from trackline.core.metrics import LOOKUP_FAILURES

logger = get_logger("lookups.device")

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class DeviceInfo:
    browser: str = UNKNOWN
    os: str = UNKNOWN
    device: str = UNKNOWN
    is_bot: bool = False


UNKNOWN_DEVICE = DeviceInfo()


def _category(agent) -> str:
    if agent.is_bot:
        return "bot"
    if agent.is_tablet:
        return "tablet"
    if agent.is_mobile:
        return "mobile"
    if agent.is_pc:
        return "desktop"
    return "other"


def parse_user_agent(user_agent: str | None) -> DeviceInfo:
    """Classify a user agent; any parser failure yields ``UNKNOWN_DEVICE``."""
    if not user_agent:
        return UNKNOWN_DEVICE
    try:
        agent = parse(user_agent)
        return DeviceInfo(
            browser=agent.browser.family or UNKNOWN,
            os=agent.os.family or UNKNOWN,
            device=_category(agent),
            is_bot=bool(agent.is_bot),
        )
    except Exception as exc:  # noqa: BLE001
        LOOKUP_FAILURES.labels(lookup="device").inc()
        logger.warning("user_agent_parse_failed", extra={"error": str(exc)})
        return UNKNOWN_DEVICE
