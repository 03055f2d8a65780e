"""
Shared error handling for the integration auth gateway.

Verification failures (bad signature, unknown kid, expired token, ...) are
returned as data by the token protocol and never appear here. The exceptions
below are for upstream failures and for configuration/internal defects.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class IntegrationGatewayError(Exception):
    """Base exception for the integration auth gateway."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details,
        )


class ConfigurationError(IntegrationGatewayError):
    """Deployment or programming defect, e.g. a client secret that is too short."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class UpstreamError(IntegrationGatewayError):
    """Non-2xx response from a platform endpoint."""

    def __init__(
        self,
        status: int,
        uri: Optional[str] = None,
        body: Optional[str] = None,
        message: Optional[str] = None,
        code: str = "UPSTREAM_ERROR",
    ):
        self.status = status
        self.uri = uri
        self.body = body
        if message is None:
            message = f"status[{status}] received from [{uri}]. Response: {body}"
        super().__init__(code, message, {"status": status, "uri": uri, "body": body})


class TokenEndpointError(UpstreamError):
    """Client-credentials exchange answered with status >= 300."""

    def __init__(self, status: int, uri: str, body: Optional[str] = None):
        super().__init__(
            status,
            uri,
            body,
            message=f"status[{status}] received from [{uri}]. Response body: {body}",
            code="TOKEN_ENDPOINT_ERROR",
        )


class GraphQLTransportError(UpstreamError):
    """GraphQL endpoint answered with a non-2xx status."""

    def __init__(self, status: int, tenant_alias: str, body: Optional[str] = None, uri: Optional[str] = None):
        self.tenant_alias = tenant_alias
        super().__init__(
            status,
            uri,
            body,
            message=f"Status[{status}] received for GraphQL request for tenant[{tenant_alias}]. Body: {body}",
            code="GRAPHQL_TRANSPORT_ERROR",
        )
        self.details["tenant_alias"] = tenant_alias


class UpstreamUnavailable(IntegrationGatewayError):
    """A platform endpoint could not be reached or returned an unusable document."""

    def __init__(self, message: str = "Upstream unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", message, details)


class KeyNotFound(IntegrationGatewayError):
    """The key set was fetched but holds no key for the requested kid."""

    def __init__(self, kid: Optional[str]):
        self.kid = kid
        super().__init__("KEY_NOT_FOUND", f"jwk not found for kid[{kid}]", {"kid": kid})


class TokenMissing(IntegrationGatewayError):
    """The token endpoint answered 2xx without a usable access_token."""

    def __init__(self, message: str = "access_token is blank", details: Optional[Dict[str, Any]] = None):
        super().__init__("TOKEN_MISSING", message, details)


class NoIntegration(IntegrationGatewayError):
    """The tenant has no integration record to update."""

    def __init__(self, tenant_alias: str):
        self.tenant_alias = tenant_alias
        super().__init__(
            "NO_INTEGRATION",
            f"Tenant[{tenant_alias}] does not have an integration",
            {"tenant_alias": tenant_alias},
        )
