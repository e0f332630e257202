from prometheus_client import Counter, Histogram, REGISTRY


# we check if they are already registered to avoid errors during hot reloads or test runs
def get_or_create_metric(name, documentation, metric_type, **kwargs):
    try:
        return metric_type(name, documentation, **kwargs)
    except ValueError:
        # If it already exists, retrieve it from the registry
        return REGISTRY._names_to_collectors[name]


REQUESTS_TOTAL = get_or_create_metric(
    "inbox_requests_total",
    "Total requests",
    Counter,
    labelnames=["endpoint", "status"],
)

REQUEST_LATENCY_SECONDS = get_or_create_metric(
    "inbox_request_latency_seconds",
    "Request latency",
    Histogram,
    labelnames=["endpoint"],
)

EVENTS_TOTAL = get_or_create_metric(
    "inbox_events_total",
    "Slack events handled, by job and outcome",
    Counter,
    labelnames=["job", "outcome"],
)

CAPTURES_TOTAL = get_or_create_metric(
    "inbox_captures_total",
    "Captures by outcome",
    Counter,
    labelnames=["outcome"],
)

BACKGROUND_FAILURES_TOTAL = get_or_create_metric(
    "inbox_background_failures_total",
    "Detached jobs that raised",
    Counter,
    labelnames=["job"],
)
