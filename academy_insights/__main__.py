# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Run the Academy Insights API with uvicorn.

Usage:
    python -m academy_insights

Workers for the background queues run separately:
    dramatiq academy_insights.infrastructure.background.tasks --queues risk funnel --threads 1
"""

import uvicorn

from academy_insights.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "academy_insights.api.app:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        workers=1 if settings.api.reload else settings.api.workers,
        reload=settings.api.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
