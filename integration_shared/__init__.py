"""
Shared utilities for the integration auth gateway.

This package aggregates the ambient building blocks used by the gateway core:

- config: Gateway configuration via pydantic-settings
- logging: Structured logging with tenant/request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Cross-cutting logic lives here so that integration_auth never has to import
from itself in cycles. Do not import from integration_auth into this package.
"""
