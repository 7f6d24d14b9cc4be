"""Prometheus metric definitions for the form generator."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

# ── Application info ────────────────────────────────────────────────
app_info = Info("formgen", "Camunda form generator metadata")

# ── HTTP request metrics ────────────────────────────────────────────
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests currently being processed",
    ["method"],
)

# ── Bundle generation metrics ───────────────────────────────────────
forms_generated_total = Counter(
    "forms_generated_total",
    "Total Camunda forms generated",
    ["template"],
)

step_context_failures_total = Counter(
    "step_context_failures_total",
    "Step description/reference lookups that failed and fell back to empty defaults",
)

bundle_generation_duration_seconds = Histogram(
    "bundle_generation_duration_seconds",
    "Time spent generating one bundle",
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
