"""
Shared utilities for the Reports Cache Layer.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application skeleton (health, metrics, CORS)

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service packages into shared/.
"""
