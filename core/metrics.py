"""Prometheus metrics for monitoring."""

from prometheus_client import Counter, Histogram

# Response time metrics
api_request_duration = Histogram(
    "api_request_duration_seconds", "API request duration in seconds", ["method", "endpoint", "status"]
)

# Report lifecycle metrics
reports_created_total = Counter("reports_created_total", "Total number of reports created", ["type", "source"])

report_transitions_total = Counter(
    "report_transitions_total", "Total number of report status transitions", ["old_status", "new_status"]
)

access_denied_total = Counter("access_denied_total", "Total number of access-control denials", ["reason"])

reports_deleted_total = Counter("reports_deleted_total", "Total number of reports deleted")

# Auto-assignment metrics
auto_assign_total = Counter("auto_assign_total", "Auto-assignment attempts", ["outcome"])

# Notification metrics
notifier_failures_total = Counter("notifier_failures_total", "Failed notification deliveries", ["channel"])

# Submission metrics
report_submit_rate_limited_total = Counter(
    "report_submit_rate_limited_total", "Public submissions rejected by the rate limiter"
)

report_submit_latency_seconds = Histogram(
    "report_submit_latency_seconds", "Time to process report submission from request to response"
)

# Scheduled task metrics
scheduled_task_runs_total = Counter("scheduled_task_runs_total", "Scheduled task runs", ["task", "outcome"])
