"""Prometheus metrics for reminder delivery and API health"""

from prometheus_client import Counter, Histogram

# Reminder metrics
reminder_counter = Counter(
    "installment_reminders_total",
    "Reminder outcomes per obligation",
    ["outcome"],  # sent | failed | skipped
)

reminder_run_tenant_failures_counter = Counter(
    "installment_reminder_tenant_failures_total",
    "Tenants whose reminder processing aborted",
)

reminder_run_duration_histogram = Histogram(
    "installment_reminder_run_seconds",
    "Duration of one scheduler run over all tenants",
    buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0],
)

# WhatsApp API metrics
whatsapp_send_latency_histogram = Histogram(
    "whatsapp_send_latency_seconds",
    "Green API sendMessage response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_reminders(sent: int, failed: int, skipped: int) -> None:
    """Record one tenant's reminder outcomes"""
    if sent:
        reminder_counter.labels(outcome="sent").inc(sent)
    if failed:
        reminder_counter.labels(outcome="failed").inc(failed)
    if skipped:
        reminder_counter.labels(outcome="skipped").inc(skipped)
