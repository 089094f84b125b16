import json
import time

from fastapi import APIRouter, Depends, HTTPException, Request, status
from redis.exceptions import RedisError

from shared.utils.clock import now_ms
from trackline.api.v1.dependencies import (
    client_ip,
    enforce_rate_limit,
    get_dispatcher,
    get_enricher,
    get_settings,
)
from trackline.core.config import Settings
from trackline.core.errors import EventRejected, TenantRejected
from trackline.core.logger import get_logger
from trackline.core.metrics import (
    EVENTS_SKIPPED,
    INGEST_EVENTS,
    INGEST_LATENCY,
    INGEST_REQUESTS,
    INGEST_TRUNCATED,
)
from trackline.services.dispatcher import Dispatcher
from trackline.services.enricher import Enricher, EnrichmentContext
from trackline.services.validator import validate_event

router = APIRouter()
logger = get_logger("api.track")


async def read_body(request: Request, limit: int) -> bytes:
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise HTTPException(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Payload too large")
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise HTTPException(
                status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, "Payload too large"
            )
    return bytes(body)


def parse_batch(body: bytes) -> list:
    try:
        records = json.loads(body)
    except (ValueError, RecursionError):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid events data") from None
    if not isinstance(records, list) or not records:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid events data")
    return records


def _skip(stats: dict, reason: str) -> None:
    stats["skipped"] += 1
    EVENTS_SKIPPED.labels(reason=reason).inc()


@router.post(
    "/track",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Track a batch of tracker events",
    response_description="Events accepted for processing",
    dependencies=[Depends(enforce_rate_limit)],
)
async def track_events(
    request: Request,
    ip: str | None = Depends(client_ip),
    settings: Settings = Depends(get_settings),
    enricher: Enricher = Depends(get_enricher),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    start = time.perf_counter()
    INGEST_REQUESTS.inc()
    try:
        records = parse_batch(await read_body(request, settings.ingest_max_body_bytes))
        stats = {
            "total": len(records),
            "accepted": 0,
            "queued": 0,
            "buffered": 0,
            "skipped": 0,
            "truncated": max(0, len(records) - settings.ingest_max_batch_size),
        }
        if stats["truncated"]:
            INGEST_TRUNCATED.inc(stats["truncated"])
            logger.warning(
                "batch_truncated",
                extra={"total": stats["total"], "truncated": stats["truncated"]},
            )
        records = records[: settings.ingest_max_batch_size]
        INGEST_EVENTS.inc(len(records))

        now = now_ms()
        context: EnrichmentContext | None = None
        for raw in records:
            try:
                event = validate_event(raw, now)
                if context is None:
                    context = await enricher.context_for(
                        ip, request.headers.get("user-agent")
                    )
                enriched = await enricher.enrich(event, context)
            except TenantRejected as exc:
                _skip(stats, "bot" if exc.reason == "bot traffic" else "tenant")
                logger.info("event_skipped", extra={"reason": exc.reason})
                continue
            except EventRejected as exc:
                _skip(stats, "invalid")
                logger.info("event_skipped", extra={"reason": exc.reason})
                continue
            except (RedisError, OSError) as exc:
                # Tenant directory unreachable; the rest of the batch still gets a try
                _skip(stats, "tenant_lookup")
                logger.warning(
                    "tenant_lookup_failed",
                    extra={"tracking_id": event.tracking_id, "error": str(exc)},
                )
                continue

            path = await dispatcher.route(enriched)
            if path == "dropped":
                _skip(stats, "fallback_full")
                continue
            stats["accepted"] += 1
            stats["queued" if path == "queue" else "buffered"] += 1

        logger.info("track_batch_processed", extra=stats)
        return {
            "message": "Events queued for processing",
            "received": len(records),
            "stats": stats,
        }
    finally:
        INGEST_LATENCY.observe(time.perf_counter() - start)
