"""
Prometheus metrics for monitoring.

Metrics collected:
- HTTP request duration and count by status code
- Permission and resource limit decisions
- Plan transitions and the suspensions/restorations they cause
- Audit store failures
- Billing provider calls
"""

from prometheus_client import Counter, Gauge, Histogram, Info

from planguard.config import settings

# Application info
app_info = Info("planguard_app", "PlanGuard application information")
app_info.info({
    "version": settings.app_version,
    "environment": settings.environment,
})

# HTTP metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0),
)

http_requests_in_progress = Gauge(
    "http_requests_in_progress",
    "Number of HTTP requests in progress",
    ["method"],
)

# Authorization metrics
permission_denials_total = Counter(
    "permission_denials_total",
    "Requests denied by the role permission table",
    ["permission"],
)

# Limit metrics
limit_checks_total = Counter(
    "limit_checks_total",
    "Resource limit checks performed",
    ["resource"],
)

limit_rejections_total = Counter(
    "limit_rejections_total",
    "Resource creations rejected because the plan ceiling was reached",
    ["resource"],
)

# Plan transition metrics
plan_transitions_total = Counter(
    "plan_transitions_total",
    "Plan transitions applied",
    ["kind"],
)

resources_suspended_total = Counter(
    "resources_suspended_total",
    "Resources suspended by plan transitions",
    ["resource"],
)

resources_restored_total = Counter(
    "resources_restored_total",
    "Resources restored by plan transitions",
    ["resource"],
)

# Audit metrics
audit_write_failures_total = Counter(
    "audit_write_failures_total",
    "Limit events that could not be persisted",
    ["event_type"],
)

# Billing metrics
billing_requests_total = Counter(
    "billing_requests_total",
    "Calls to the billing provider",
    ["operation", "status"],
)

# Cache metrics
cache_operations_total = Counter(
    "cache_operations_total",
    "Total cache operations",
    ["operation", "hit"],
)
