"""Prometheus metrics for the analysis scheduler."""

from prometheus_client import Counter, Gauge, Histogram

# Dispatch trigger outcomes
DISPATCH_REQUESTS = Counter(
    "notewatch_dispatch_requests_total",
    "Total number of dispatch triggers",
    ["status"],  # disabled, ceiling_reached, nothing_pending, accepted, error
)

# Notes moved to in_progress
JOBS_CLAIMED = Counter(
    "notewatch_jobs_claimed_total",
    "Total number of notes claimed for analysis",
    ["source"],  # batch, single
)

# Terminal outcomes written by workers
JOBS_COMPLETED = Counter(
    "notewatch_jobs_completed_total",
    "Total number of analysis jobs finished",
    ["status"],  # analyzed, failed
)

WORKERS_RUNNING = Gauge(
    "notewatch_workers_running",
    "Number of analysis workers currently running in this process",
)

PROVIDER_LATENCY = Histogram(
    "notewatch_provider_latency_seconds",
    "Latency of inference backend calls",
    ["provider"],
)

JOBS_IN_PROGRESS = Gauge(
    "notewatch_jobs_in_progress",
    "Number of notes in_progress as last counted by the dispatcher",
)
