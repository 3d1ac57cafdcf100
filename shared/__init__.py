"""
Shared utilities for the 254Carbon API Key Service.

This package aggregates common building blocks consumed by the services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- urls: Issuer and JWKS URL composition
- base_service: FastAPI application scaffolding

Do not import from service_* packages into shared/.
"""
