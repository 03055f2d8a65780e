"""
FastAPI dependencies for requests arriving at an integration.
"""

from typing import Collection

from fastapi import FastAPI, HTTPException, Request
from jose import jwt

from integration_shared.errors import UpstreamUnavailable
from integration_shared.logging import get_logger
from .auth import IntegrationAuth
from .http_util import get_global_headers
from .validation.token_protocol import TENANT_SUFFIX

DEFAULT_SIGNATURE_HEADER = "X-Hub-Signature"


def _bearer_token(request: Request) -> str:
    authorization = request.headers.get("Authorization") or ""
    if authorization.startswith("Bearer "):
        return authorization[7:].strip()
    return ""


class IntegrationAuthMiddleware:
    """Turns token verdicts into HTTP 401/503 responses."""

    def __init__(self, auth: IntegrationAuth, *, signature_header: str = DEFAULT_SIGNATURE_HEADER):
        self.auth = auth
        self.signature_header = signature_header
        self.logger = get_logger("integration.middleware")

    async def authenticate_tenant(self, request: Request) -> str:
        """Verify the tenant-scoped token and return the tenant alias."""
        token = _bearer_token(request) or request.query_params.get("token", "")
        try:
            verdict = await self.auth.verify_tenant_scoped_token(token)
        except UpstreamUnavailable as exc:
            raise HTTPException(status_code=503, detail=exc.to_response().model_dump()) from exc
        if not verdict.ok:
            raise HTTPException(status_code=401, detail=verdict.value)
        request.state.tenant_alias = verdict.value
        return verdict.value

    async def authenticate_access_key(self, request: Request) -> str:
        """Verify an access key minted by this gateway and return its tenant alias."""
        access_key = _bearer_token(request) or request.headers.get("X-Access-Key", "")
        error = self.auth.verify_integration_access_key(access_key)
        if error is not None:
            raise HTTPException(status_code=401, detail=error)
        subject = jwt.get_unverified_claims(access_key).get("sub") or ""
        tenant_alias = subject[: -len(TENANT_SUFFIX)] if subject.endswith(TENANT_SUFFIX) else ""
        if not tenant_alias.strip():
            raise HTTPException(status_code=401, detail="Blank tenantAlias")
        request.state.tenant_alias = tenant_alias
        return tenant_alias

    async def authenticate_webhook(self, request: Request) -> bytes:
        """Verify the detached webhook signature and return the raw body."""
        body = await request.body()
        try:
            error = await self.auth.validate_webhook(request.headers.get(self.signature_header), body)
        except UpstreamUnavailable as exc:
            raise HTTPException(status_code=503, detail=exc.to_response().model_dump()) from exc
        if error is not None:
            self.logger.warning("Webhook rejected", error=error)
            raise HTTPException(status_code=401, detail=error)
        return body


def add_security_headers(app: FastAPI, frame_src: Collection[str] = ()) -> None:
    """Attach the global security headers to every response of ``app``."""
    headers = get_global_headers(frame_src)

    @app.middleware("http")
    async def _security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response
