# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Dramatiq broker for the risk batch and funnel refresh jobs.

Production workers talk to Redis, with the Results middleware keeping
each batch summary retrievable by message id. Setting
``DRAMATIQ_TEST_MODE=true`` swaps in an in-memory StubBroker so tests
and local runs never need Redis.

Example:
    from academy_insights.infrastructure.background.broker import setup_dramatiq

    broker = setup_dramatiq()
"""

import logging
import os
from typing import Any

import dramatiq
import redis
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.results import Results
from dramatiq.results.backends.redis import RedisBackend

from academy_insights.core.config import get_settings

logger = logging.getLogger(__name__)


class Queues:
    """Queues the academy jobs are routed to."""

    DEFAULT = "default"
    RISK = "risk"
    FUNNEL = "funnel"

    @classmethod
    def all(cls) -> tuple[str, ...]:
        return (cls.DEFAULT, cls.RISK, cls.FUNNEL)


class Priority:
    """Actor priorities; Dramatiq runs lower numbers first."""

    HIGH = 1
    NORMAL = 3
    LOW = 5


def _stub_mode() -> bool:
    return os.getenv("DRAMATIQ_TEST_MODE", "false").lower() == "true"


def _redact(url: str) -> str:
    """Drop credentials from a Redis URL before logging it."""
    return url.rsplit("@", 1)[-1]


def _redis_broker(url: str) -> RedisBroker:
    broker = RedisBroker(url=url)
    broker.add_middleware(Results(backend=RedisBackend(url=url)))
    return broker


def _stub_broker() -> StubBroker:
    broker = StubBroker()
    broker.emit_after("process_boot")
    return broker


class BrokerManager:
    """Owns the process-wide broker.

    The broker is built lazily on the first ``setup()`` call and
    registered with ``dramatiq.set_broker`` so actors declared afterwards
    bind to it.
    """

    def __init__(self) -> None:
        self._broker: dramatiq.Broker | None = None

    @property
    def is_initialized(self) -> bool:
        return self._broker is not None

    @property
    def broker(self) -> dramatiq.Broker:
        if self._broker is None:
            raise RuntimeError("Dramatiq broker is not set up; call setup_dramatiq() first")
        return self._broker

    def setup(self) -> dramatiq.Broker:
        if self._broker is not None:
            return self._broker

        if _stub_mode():
            broker: dramatiq.Broker = _stub_broker()
            logger.info("Dramatiq running on StubBroker")
        else:
            url = get_settings().redis.url
            broker = _redis_broker(url)
            logger.info("Dramatiq running on Redis at %s", _redact(url))

        for queue in Queues.all():
            broker.declare_queue(queue)

        dramatiq.set_broker(broker)
        self._broker = broker
        return broker

    def shutdown(self) -> None:
        if self._broker is None:
            return
        self._broker.close()
        self._broker = None
        logger.info("Dramatiq broker closed")

    def get_queue_stats(self) -> dict[str, Any]:
        """Report pending message counts for the academy queues."""
        if self._broker is None:
            return {"status": "not_initialized"}
        if not isinstance(self._broker, RedisBroker):
            return {"broker_type": "stub", "status": "healthy"}

        try:
            client = redis.from_url(get_settings().redis.url)
            depths = {queue: client.llen(f"dramatiq:{queue}") for queue in Queues.all()}
        except redis.RedisError as e:
            return {"broker_type": "redis", "status": "error", "error": str(e)}
        return {"broker_type": "redis", "status": "healthy", "queues": depths}


_broker_manager: BrokerManager | None = None


def get_broker_manager() -> BrokerManager:
    global _broker_manager
    if _broker_manager is None:
        _broker_manager = BrokerManager()
    return _broker_manager


def setup_dramatiq() -> dramatiq.Broker:
    """Build and register the broker.

    Safe to call repeatedly; the task modules call it at import time.
    """
    return get_broker_manager().setup()


def get_broker() -> dramatiq.Broker:
    """Return the registered broker.

    Raises:
        RuntimeError: If setup_dramatiq() has not run.
    """
    return get_broker_manager().broker


def shutdown_dramatiq() -> None:
    global _broker_manager
    if _broker_manager is not None:
        _broker_manager.shutdown()
        _broker_manager = None
