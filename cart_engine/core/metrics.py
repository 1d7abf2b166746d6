from __future__ import annotations

from typing import Any

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from cart_engine.core.config import settings


class _NoOpMetric:
    def labels(self, *args: Any, **kwargs: Any) -> "_NoOpMetric":
        return self

    def observe(self, *_: Any, **__: Any) -> None:
        return None

    def inc(self, *_: Any, **__: Any) -> None:
        return None


def _metric_or_noop(metric: Any) -> Any:
    if not settings.METRICS_ENABLED:
        return _NoOpMetric()
    return metric


REQUEST_LATENCY = _metric_or_noop(
    Histogram(
        f"{settings.METRICS_NAMESPACE}_http_request_duration_seconds",
        "HTTP request latency in seconds.",
        ["method", "path", "status_code"],
        buckets=settings.METRICS_LATENCY_BUCKETS,
    )
)

REQUEST_COUNT = _metric_or_noop(
    Counter(
        f"{settings.METRICS_NAMESPACE}_http_requests_total",
        "Total HTTP requests processed.",
        ["method", "path", "status_code"],
    )
)

REQUEST_ERRORS = _metric_or_noop(
    Counter(
        f"{settings.METRICS_NAMESPACE}_http_errors_total",
        "Total HTTP requests resulting in 4xx/5xx.",
        ["method", "path", "status_code"],
    )
)

CART_MUTATIONS = _metric_or_noop(
    Counter(
        f"{settings.METRICS_NAMESPACE}_cart_mutations_total",
        "Cart mutations partitioned by operation.",
        ["operation"],
    )
)

COUPON_OUTCOMES = _metric_or_noop(
    Counter(
        f"{settings.METRICS_NAMESPACE}_coupon_applications_total",
        "Coupon applications partitioned by outcome.",
        ["outcome"],
    )
)

CART_VALIDATIONS = _metric_or_noop(
    Counter(
        f"{settings.METRICS_NAMESPACE}_cart_validations_total",
        "Checkout validations partitioned by result.",
        ["result"],
    )
)


def normalize_path(request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    if path:
        return path
    return request.url.path


def record_request_metrics(request, status_code: int, elapsed: float) -> None:
    method = request.method
    path = normalize_path(request)
    labels = (method, path, str(status_code))
    REQUEST_COUNT.labels(*labels).inc()
    REQUEST_LATENCY.labels(*labels).observe(elapsed)
    if status_code >= 400:
        REQUEST_ERRORS.labels(*labels).inc()


def record_cart_mutation(operation: str) -> None:
    CART_MUTATIONS.labels(operation=operation).inc()


def record_coupon_outcome(outcome: str) -> None:
    COUPON_OUTCOMES.labels(outcome=outcome).inc()


def record_validation(is_valid: bool) -> None:
    CART_VALIDATIONS.labels(result="valid" if is_valid else "invalid").inc()


def export_metrics() -> tuple[bytes, str]:
    if not settings.METRICS_ENABLED:
        return b"", "text/plain; charset=utf-8"
    return generate_latest(), CONTENT_TYPE_LATEST
