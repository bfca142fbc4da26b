"""
Observability module for the gym access services.
Integrates logging, metrics, and tracing.
"""

from typing import Optional

from .logging import configure_logging, get_logger, set_request_id, set_admission_context
from .metrics import MetricsCollector, get_metrics_collector
from .tracing import configure_tracing, add_span_attributes, add_span_event


class ObservabilityManager:
    """Centralized observability manager for services."""

    def __init__(self, service_name: str, log_level: str = "info",
                 enable_tracing: bool = False, otel_exporter: Optional[str] = None,
                 enable_console: bool = False, metrics: Optional[MetricsCollector] = None):
        self.service_name = service_name
        self.log_level = log_level
        self.enable_tracing = enable_tracing
        self.otel_exporter = otel_exporter
        self.enable_console = enable_console

        configure_logging(self.service_name, self.log_level)
        if self.enable_tracing:
            configure_tracing(self.service_name, self.otel_exporter, self.enable_console)
        self.metrics = metrics or get_metrics_collector(self.service_name)

        self.logger = get_logger(f"{service_name}.observability")
        self.logger.info("Observability initialized",
                         log_level=log_level,
                         tracing_enabled=enable_tracing)

    def trace_request(self, request_id: Optional[str] = None,
                      member_id: Optional[str] = None,
                      branch_id: Optional[str] = None):
        """Set up request context for logs and the current span."""
        if request_id:
            set_request_id(request_id)
        if member_id or branch_id:
            set_admission_context(member_id, branch_id)

        add_span_attributes(
            request_id=request_id,
            member_id=member_id,
            branch_id=branch_id
        )

    def log_error(self, error_type: str, error_message: str, **kwargs):
        """Log error with full context."""
        self.logger.error(
            "Error occurred",
            error_type=error_type,
            error_message=error_message,
            **kwargs
        )
        self.metrics.record_error(error_type)
        add_span_event("error", error_type=error_type, error_message=error_message)

    def log_business_event(self, event_type: str, **kwargs):
        """Log business event with full context."""
        self.logger.info(
            "Business event",
            event_type=event_type,
            **kwargs
        )
        self.metrics.record_business_event(event_type)
        add_span_event("business_event", event_type=event_type, **kwargs)


def get_observability_manager(service_name: str, **kwargs) -> ObservabilityManager:
    """Get an observability manager for a service."""
    return ObservabilityManager(service_name, **kwargs)
