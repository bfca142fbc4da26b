"""
Shared utilities for the gym access services.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with trace and admission correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- observability: Logging, metrics and tracing behind one manager
- errors: Canonical error types and responses
- base_service: FastAPI app factory with health, metrics and error handlers

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
