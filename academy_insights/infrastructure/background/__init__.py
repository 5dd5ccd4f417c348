# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure module for Academy Insights.

Provides background task processing with Dramatiq:
- Redis broker for message persistence and durability
- Actors for the nightly risk batch and the days-in-funnel refresh
- APScheduler integration for periodic tasks

Quick Start:
    from academy_insights.infrastructure.background import setup_dramatiq
    setup_dramatiq()

    from academy_insights.infrastructure.background.tasks import run_risk_batch
    run_risk_batch.send()

Running Workers:
    dramatiq academy_insights.infrastructure.background.tasks --threads 1

Scheduler:
    from academy_insights.infrastructure.background import start_scheduler, stop_scheduler

    await start_scheduler()
    await stop_scheduler()
"""

from academy_insights.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from academy_insights.infrastructure.background.scheduler import (
    DramatiqScheduler,
    ScheduledTask,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

# Task actors are imported lazily to avoid circular imports:
# from academy_insights.infrastructure.background.tasks import run_risk_batch

__all__ = [
    # Broker
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Scheduler
    "DramatiqScheduler",
    "ScheduledTask",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
