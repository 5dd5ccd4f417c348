"""Academy Insights Backend.

Risk scoring, alerting and funnel analytics for academy management:
nightly churn-risk batches, alert lifecycle and lead funnel reports.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
