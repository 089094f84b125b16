import asyncio
import signal
from unittest.mock import patch

import pytest

from trackline.worker.main import install_signal_handlers


@pytest.mark.asyncio
async def test_first_signal_drains_second_cancels():
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    handlers = {}

    with patch(
        "trackline.worker.main.signal.signal",
        side_effect=lambda sig, handler: handlers.__setitem__(sig, handler),
    ):
        install_signal_handlers(loop, shutdown)

    assert set(handlers) == {signal.SIGINT, signal.SIGTERM}

    handlers[signal.SIGTERM](signal.SIGTERM, None)
    await asyncio.sleep(0)
    assert shutdown.is_set()

    victim = asyncio.create_task(asyncio.sleep(10))
    with patch("trackline.worker.main.asyncio.all_tasks", return_value={victim}):
        handlers[signal.SIGINT](signal.SIGINT, None)
    await asyncio.sleep(0)
    with pytest.raises(asyncio.CancelledError):
        await victim
