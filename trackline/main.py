import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from prometheus_fastapi_instrumentator import Instrumentator

from trackline import __version__
from trackline.api.v1.router import api_router
from trackline.core.config import settings
from trackline.core.logger import configure_logging, get_logger
from trackline.startup import build_container

configure_logging()
logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("ingestion_service_starting")
    factory = getattr(app.state, "container_factory", None) or build_container
    app.state.container = await factory(settings)
    app.state.container.fallback.start()
    try:
        yield
    finally:
        logger.info("ingestion_service_stopping")
        await app.state.container.close()


app = FastAPI(title="Trackline Ingestion API", version=__version__, lifespan=lifespan)


def _metrics_registry() -> CollectorRegistry:
    # Under gunicorn/uvicorn workers each process writes to PROMETHEUS_MULTIPROC_DIR
    if "PROMETHEUS_MULTIPROC_DIR" in os.environ:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        return registry
    return REGISTRY


@app.get("/metrics")
def metrics():
    data = generate_latest(_metrics_registry())
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    excluded_handlers=["/docs", "/openapi.json", "/metrics"],
    inprogress_name="trackline_inprogress",
    inprogress_labels=True,
)

instrumentator.instrument(app)

app.include_router(api_router, prefix="/v1")
