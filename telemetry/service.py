"""
Telemetry for the location ping service.

Every log line is a single JSON object on stdout, tagged with the request
ID of the ping, listing or clear that produced it. Tracing is optional:
when ``otel_endpoint`` is set, spans are exported over OTLP (the
OpenTelemetry packages are imported only then).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from middleware.request_id import request_id_var


class JSONFormatter(logging.Formatter):
    """
    Render log records as one JSON object per line.

    Fields: timestamp (UTC, ``Z`` suffix), level, message, logger,
    request_id, source location, any ``static_fields`` given at
    construction, and the contents of ``extra={"extra_data": {...}}``.
    """

    def __init__(self, static_fields: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.static_fields = static_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
            **self.static_fields,
        }

        if record.module:
            entry["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            entry["function"] = record.funcName
        if record.lineno:
            entry["line"] = record.lineno

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            entry.update(extra_data)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_trace"] = record.stack_info

        return json.dumps(entry, default=str)


def configure_logging(level_name: str, static_fields: Optional[Dict[str, Any]] = None) -> int:
    """Replace the root logger's handlers with a single JSON stdout handler."""
    level = getattr(logging, level_name.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter(static_fields))
    root_logger.addHandler(handler)
    return level


def configure_tracing(endpoint: str, service_name: str):
    """
    Install an OTLP-exporting tracer provider and return a tracer.

    Raises:
        ImportError: If the OpenTelemetry packages are not installed
    """
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(service_name)


class TelemetryService:
    """
    Logging, metrics and tracing for the service.

    Metrics are written as DEBUG log entries (``metric_name`` /
    ``metric_value``) so they travel with the rest of the JSON logs.

    Attributes:
        settings: Settings providing log_level, otel_endpoint, otel_service_name
        tracer: OpenTelemetry tracer, or None when tracing is off
    """

    def __init__(self, settings: Optional[Any] = None):
        self.settings = settings
        self.tracer = None
        self._logger = logging.getLogger("telemetry")

        log_level = getattr(settings, "log_level", None) or "INFO"
        configure_logging(log_level, self._static_fields())
        self._logger.info(
            "Telemetry service initialized",
            extra={"extra_data": {"log_level": log_level}}
        )

        self._setup_tracing()

    def _static_fields(self) -> Dict[str, Any]:
        if self.settings is None:
            return {}
        environment = getattr(self.settings, "environment", None)
        return {
            "service": getattr(self.settings, "otel_service_name", "location-ping-service"),
            "environment": getattr(environment, "value", environment),
        }

    def _setup_tracing(self) -> None:
        endpoint = getattr(self.settings, "otel_endpoint", None)
        if not endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        service_name = getattr(self.settings, "otel_service_name", "location-ping-service")
        try:
            self.tracer = configure_tracing(endpoint, service_name)
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )
            return
        except Exception as e:
            self._logger.error(
                "Failed to configure OpenTelemetry tracing",
                extra={"extra_data": {"error": str(e)}}
            )
            return

        self._logger.info(
            "OpenTelemetry tracing configured",
            extra={"extra_data": {"otel_endpoint": endpoint, "service_name": service_name}}
        )

    def record_metric(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        """Record a metric value, with optional dimension tags."""
        metric_data: Dict[str, Any] = {"metric_name": name, "metric_value": value}
        if tags:
            metric_data["tags"] = tags
        self._logger.debug(f"Metric: {name}={value}", extra={"extra_data": metric_data})

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Start a span as the current span, or return a no-op stand-in.

        Use as a context manager; ``attributes`` are set once it is entered.
        """
        if self.tracer is None:
            return _NoOpSpan()
        return _AttributedSpan(self.tracer.start_as_current_span(name), attributes or {})

    def create_external_service_span(
        self,
        service_name: str,
        operation: str,
        attributes: Optional[Dict[str, Any]] = None
    ):
        """Span for a client call to another service, named ``<service>.<operation>``."""
        span_attributes = {
            "service.name": service_name,
            "operation.name": operation,
            "span.kind": "client",
            **(attributes or {}),
        }
        return self.create_span(f"{service_name}.{operation}", span_attributes)


class _AttributedSpan:

    def __init__(self, span_context, attributes: Dict[str, Any]):
        self._span_context = span_context
        self._attributes = attributes

    def __enter__(self):
        span = self._span_context.__enter__()
        for key, value in self._attributes.items():
            span.set_attribute(key, value)
        return span

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self._span_context.__exit__(exc_type, exc_val, exc_tb)


class _NoOpSpan:
    """Stand-in span used when tracing is off."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass


_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """Return the process-wide telemetry service, or None before initialization."""
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """Create the process-wide telemetry service from settings."""
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service
