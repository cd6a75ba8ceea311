from __future__ import annotations

import asyncio
from typing import Any


def cancel_task(task: asyncio.Task[Any]) -> None:
    """Cancel ``task`` from any thread.

    Tasks owned by another event loop are cancelled through that loop's
    ``call_soon_threadsafe``.
    """
    loop = task.get_loop()
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None

    if loop is running:
        task.cancel()
    elif not loop.is_closed():
        loop.call_soon_threadsafe(task.cancel)
