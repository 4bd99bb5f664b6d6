"""Prometheus metrics for the storefront display engine."""

import time

from prometheus_client import Counter, Gauge, Info

from storefront import __version__

app_info = Info("storefront", "Storefront display engine info")
app_info.info({"version": __version__, "name": "storefront"})

# Pricing
price_updates_total = Counter(
    "price_updates_total",
    "Total number of product price changes",
    ["source", "direction"],
)

price_tick_products = Gauge(
    "price_tick_products",
    "Products examined in the last price tick",
    ["result"],
)

# Campaigns
campaign_transitions_total = Counter(
    "campaign_transitions_total",
    "Campaign state transitions",
    ["to_status"],
)

quick_ads_played_total = Counter(
    "quick_ads_played_total",
    "Quick ads sent to the display",
    ["kind"],
)

display_conflicts_total = Counter(
    "display_conflicts_total",
    "Requests rejected because a campaign occupied the display",
)

# Jobs
job_runs_total = Counter(
    "job_runs_total",
    "Total number of job executions",
    ["task", "status"],
)

job_last_run_timestamp = Gauge(
    "job_last_run_timestamp",
    "Timestamp of last job run",
    ["task"],
)

jobs_deduplicated_total = Counter(
    "jobs_deduplicated_total",
    "Jobs not enqueued because a job with the same key was pending",
    ["task"],
)

# Notifications
connected_clients = Gauge(
    "connected_display_clients",
    "Open display streams in this process",
    ["channel"],
)

notifications_published_total = Counter(
    "notifications_published_total",
    "Events published on a notification channel",
    ["channel", "status"],
)


def record_price_change(source: str, old_price: float, new_price: float):
    """Record a price change."""
    direction = "up" if new_price > old_price else "down"
    price_updates_total.labels(source=source, direction=direction).inc()


def record_job_run(task: str, success: bool):
    """Record a job execution."""
    status = "success" if success else "error"
    job_runs_total.labels(task=task, status=status).inc()
    job_last_run_timestamp.labels(task=task).set(time.time())
