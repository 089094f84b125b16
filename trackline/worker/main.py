"""Entry point of the consumer process: ``trackline-worker``."""

from __future__ import annotations

import asyncio
import signal

from prometheus_client import start_http_server

from trackline.core.config import settings
from trackline.core.logger import configure_logging, get_logger
from trackline.startup import build_container

logger = get_logger("worker.main")


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop, shutdown_event: asyncio.Event
) -> None:
    """First signal drains in-flight jobs, a second one cancels everything."""
    state = {"signalled": False}

    def _on_signal(signum, frame):  # noqa: ARG001
        if not state["signalled"]:
            logger.info("signal_received", extra={"signal": signum, "action": "drain"})
            loop.call_soon_threadsafe(shutdown_event.set)
            state["signalled"] = True
        else:
            logger.warning(
                "second_signal_exit", extra={"signal": signum, "action": "cancel"}
            )
            for task in asyncio.all_tasks(loop):
                loop.call_soon_threadsafe(task.cancel)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _on_signal)
        except (ValueError, OSError):
            logger.debug("signal_handler_install_failed", extra={"signal": sig})


async def _run() -> None:
    configure_logging(service=f"{settings.service_name}-worker")
    logger.info("worker_service_starting")

    start_http_server(settings.worker_metrics_port)
    logger.info("metrics_listening", extra={"port": settings.worker_metrics_port})

    container = await build_container(settings, with_worker=True)
    shutdown_event = asyncio.Event()
    install_signal_handlers(asyncio.get_running_loop(), shutdown_event)

    try:
        await container.pool.run(shutdown_event)
    except asyncio.CancelledError:  # pragma: no cover
        logger.info("worker_cancelled")
    finally:
        logger.info("worker_service_stopping")
        await container.close()


def main() -> None:  # pragma: no cover - small wrapper
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_shutdown")
    except Exception:  # noqa: BLE001
        logger.exception("fatal_error_main")
        raise SystemExit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
