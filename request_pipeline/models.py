"""Internal data models for request-pipeline.

Configuration models use Pydantic v2. OutboundRequest is a plain dataclass
because it is built fresh for every call and never serialized.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator

from request_pipeline.context import RequestContext

HTTP_METHODS = frozenset(
    {"GET", "PUT", "POST", "DELETE", "HEAD", "PATCH", "CONNECT", "OPTIONS", "TRACE"}
)


# =============================================================================
# Wire Request
# =============================================================================


@dataclass
class OutboundRequest:
    """One fully-built request, owned by a single call until it is sent.

    ``host`` overrides the wire Host independently of the URL authority.
    """

    method: str
    url: str
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    context: RequestContext = field(default_factory=RequestContext.background)
    host: str | None = None

    def to_httpx(self) -> httpx.Request:
        """Build an httpx.Request over the buffered body.

        Each call returns a fresh request reading the same bytes, so retries
        replay the identical payload. A context deadline becomes the httpx
        per-request timeout.
        """
        headers = dict(self.headers)
        if self.host:
            for key in [k for k in headers if k.lower() == "host"]:
                del headers[key]
            headers["Host"] = self.host
        extensions: dict[str, Any] = {}
        remaining = self.context.remaining()
        if remaining is not None:
            extensions["timeout"] = httpx.Timeout(max(remaining, 0.0)).as_dict()
        return httpx.Request(
            self.method,
            self.url,
            headers=headers,
            content=self.body,
            extensions=extensions,
        )


# =============================================================================
# Client Configuration
# =============================================================================


class BasicAuthConfig(BaseModel):
    """HTTP basic authentication credentials."""

    model_config = ConfigDict(extra="forbid")

    username: str = Field(description="Basic auth user name")
    password: str = Field(default="", description="Basic auth password")


class RetryConfig(BaseModel):
    """Bounded retry settings. Total attempts per call = count + 1."""

    model_config = ConfigDict(extra="forbid")

    count: int = Field(default=0, ge=0, description="Retries after the first attempt")
    interval: float = Field(default=0.0, ge=0.0, description="Seconds between attempts")


class ClientConfig(BaseModel):
    """Top-level client configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    prefix: str = Field(default="", description="URL prefix prepended to every path")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
    cookies: dict[str, str] = Field(default_factory=dict, description="Initial cookies")
    content_type: str | None = Field(
        default=None, description="Explicit Content-Type, e.g. application/json"
    )
    basic_auth: BasicAuthConfig | None = Field(default=None, description="Basic auth credentials")
    agent: str | None = Field(default=None, description="User-Agent header value")
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retry settings")
    timeout: float = Field(default=30.0, gt=0.0, description="Transport timeout in seconds")
    browser_mode: bool = Field(
        default=False, description="Capture response cookies into the client"
    )
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to a CA bundle")
    cert: str | None = Field(default=None, description="Client certificate path (mTLS)")
    key: str | None = Field(default=None, description="Client private key path (mTLS)")

    @model_validator(mode="after")
    def check_cert_pair(self) -> ClientConfig:
        if bool(self.cert) != bool(self.key):
            raise ValueError("cert and key must be provided together")
        return self
