"""Prometheus metrics instrumentation for application monitoring."""

from fastapi import FastAPI
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator, metrics
from prometheus_fastapi_instrumentator.metrics import Info

from .config import settings

REQUESTS_RECEIVED = Counter(
    "http_requests_received_total",
    "Requests received by the API.",
)
RESPONSES_SENT = Counter(
    "http_responses_sent_total",
    "Responses sent by the API, by status code.",
    ["status"],
)


def request_counters(info: Info) -> None:
    """Totals across all handlers, next to the per-handler default metrics."""
    REQUESTS_RECEIVED.inc()
    RESPONSES_SENT.labels(status=info.modified_status).inc()


def setup_monitoring(app: FastAPI) -> None:
    """Configure and expose Prometheus metrics endpoint (toggle: ENABLE_METRICS)."""
    if not settings.ENABLE_METRICS:
        return

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )
    instrumentator.add(metrics.default())
    instrumentator.add(request_counters)

    # Instrument the app and expose /metrics endpoint
    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=True)
