from __future__ import annotations

import json
import logging
from typing import Iterable

from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator, metrics

from backend.venue_search import config

try:  # pragma: no cover - optional dependency
    import google.cloud.logging  # type: ignore[import]
    from google.cloud.logging_v2.handlers import CloudLoggingHandler  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover - optional dependency
    google = None  # type: ignore[assignment]
    CloudLoggingHandler = None  # type: ignore[assignment]
else:  # pragma: no cover - optional dependency
    google = google  # type: ignore[misc]


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for console logging."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - simple serialization
        payload = {
            "message": record.getMessage(),
            "severity": record.levelname,
            "logger": record.name,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
        }
        if record.exc_info:
            payload["trace"] = self.formatException(record.exc_info)
        json_fields = getattr(record, "json_fields", None)
        if isinstance(json_fields, dict):
            payload.update(json_fields)
        return json.dumps(payload, default=str, separators=(",", ":"))


def _sanitize_excluded_loggers(raw: Iterable[str]) -> list[str]:
    return [name for name in raw if name]


def configure_logging() -> None:
    """Configure application logging for Cloud Logging or JSON console output."""

    root_logger = logging.getLogger()
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    if config.ENABLE_CLOUD_LOGGING and google is not None and CloudLoggingHandler is not None:
        try:  # pragma: no cover - network interactions exercised via integration tests
            client = google.cloud.logging.Client()
            handler = CloudLoggingHandler(client=client, name=config.CLOUD_LOGGING_LOG_NAME)
            root_logger.handlers.clear()
            root_logger.addHandler(handler)
            root_logger.setLevel(log_level)
            excluded = _sanitize_excluded_loggers(config.CLOUD_LOGGING_EXCLUDED_LOGGERS)
            for logger_name in excluded:
                logging.getLogger(logger_name).propagate = False
            logging.getLogger(__name__).info(
                "Cloud Logging handler configured",
                extra={
                    "json_fields": {
                        "logName": config.CLOUD_LOGGING_LOG_NAME,
                        "excluded": excluded,
                    }
                },
            )
            return
        except Exception as exc:  # pragma: no cover - fallback path
            logging.getLogger(__name__).warning(
                "Failed to initialize Cloud Logging; falling back to JSON console",
                extra={"json_fields": {"error": str(exc)}},
            )

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)
    logging.getLogger(__name__).info(
        "JSON console logging configured",
        extra={"json_fields": {"logLevel": logging.getLevelName(log_level)}},
    )


_cache_hit_counter = Counter(
    "search_cache_hits_total",
    "Number of cache hits for search responses",
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)

_cache_miss_counter = Counter(
    "search_cache_misses_total",
    "Number of cache misses for search responses",
    labelnames=("reason",),
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)

_cache_error_counter = Counter(
    "search_cache_errors_total",
    "Number of cache errors during search response caching",
    labelnames=("operation",),
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)

_cache_invalidation_counter = Counter(
    "search_cache_invalidated_keys_total",
    "Number of search cache entries removed by namespace sweeps",
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)

_analytics_failure_counter = Counter(
    "search_analytics_failures_total",
    "Number of search analytics records that could not be persisted",
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)

_background_failure_counter = Counter(
    "background_task_failures_total",
    "Number of detached background tasks that raised",
    labelnames=("task",),
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)

_query_duration_histogram = Histogram(
    "search_query_duration_seconds",
    "Primary store search latency",
    labelnames=("operation",),
    namespace=config.PROMETHEUS_METRICS_NAMESPACE,
    subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
)


def configure_metrics(app) -> None:
    """Attach Prometheus instrumentation to the FastAPI app when enabled."""

    if not config.ENABLE_PROMETHEUS_METRICS:
        logging.getLogger(__name__).info("Prometheus metrics disabled via configuration")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=[".*metrics"],
    )
    instrumentator.add(
        metrics.default(
            metric_namespace=config.PROMETHEUS_METRICS_NAMESPACE,
            metric_subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
        )
    )
    instrumentator.instrument(
        app,
        metric_namespace=config.PROMETHEUS_METRICS_NAMESPACE,
        metric_subsystem=config.PROMETHEUS_METRICS_SUBSYSTEM,
    ).expose(app, include_in_schema=False, should_gzip=True)
    logging.getLogger(__name__).info(
        "Prometheus metrics endpoint exposed",
        extra={
            "json_fields": {
                "namespace": config.PROMETHEUS_METRICS_NAMESPACE,
                "subsystem": config.PROMETHEUS_METRICS_SUBSYSTEM,
            }
        },
    )


def record_cache_hit() -> None:
    _cache_hit_counter.inc()


def record_cache_miss(reason: str) -> None:
    _cache_miss_counter.labels(reason=reason).inc()


def record_cache_error(operation: str) -> None:
    _cache_error_counter.labels(operation=operation).inc()


def record_cache_invalidation(removed: int) -> None:
    if removed > 0:
        _cache_invalidation_counter.inc(removed)


def record_analytics_failure() -> None:
    _analytics_failure_counter.inc()


def record_background_failure(task: str) -> None:
    _background_failure_counter.labels(task=task).inc()


def observe_query_duration(operation: str, seconds: float) -> None:
    _query_duration_histogram.labels(operation=operation).observe(seconds)


__all__ = [
    "configure_logging",
    "configure_metrics",
    "record_cache_hit",
    "record_cache_miss",
    "record_cache_error",
    "record_cache_invalidation",
    "record_analytics_failure",
    "record_background_failure",
    "observe_query_duration",
]
