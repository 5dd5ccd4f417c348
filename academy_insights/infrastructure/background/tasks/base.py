# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bridge from synchronous Dramatiq actors to the async services.

The asyncpg pool behind the SQLAlchemy engine is tied to the loop it
was opened on. Each worker thread therefore reuses a single loop for
all the jobs it runs instead of calling ``asyncio.run`` per message.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_local = threading.local()


def _worker_loop() -> asyncio.AbstractEventLoop:
    loop: asyncio.AbstractEventLoop | None = getattr(_local, "loop", None)
    if loop is not None and not loop.is_closed():
        return loop

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    _local.loop = loop
    logger.debug("Opened event loop for worker thread %s", threading.current_thread().name)
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run ``coro`` to completion on the calling thread's loop.

    Example:
        @dramatiq.actor(queue_name=Queues.RISK)
        def run_risk_batch(as_of=None):
            return run_async(execute_risk_batch(ensure_utc(as_of)))
    """
    return _worker_loop().run_until_complete(coro)
