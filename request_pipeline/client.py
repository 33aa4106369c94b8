"""Client - configuration state and verb entry points for the request pipeline.

Each call encodes the data, builds an OutboundRequest, runs it through the
middleware chain (or straight to the retry executor when no interceptors are
configured), and in browser mode reconciles response cookies into the client.

Every returned ClientResponse must be closed by the caller.
"""

from __future__ import annotations

import contextlib
import logging
from http.cookiejar import CookieJar, DefaultCookiePolicy
from pathlib import Path
from threading import Lock
from typing import Any, Callable, ContextManager

import httpx

from request_pipeline.builder import RequestDefaults, build_request
from request_pipeline.config_loader import load_client_config
from request_pipeline.context import RequestContext
from request_pipeline.cookies import CookieStore
from request_pipeline.middleware import Interceptor, MiddlewareChain
from request_pipeline.models import ClientConfig, OutboundRequest
from request_pipeline.response import ClientResponse
from request_pipeline.retry import RetryExecutor, WaitFunc

logger = logging.getLogger(__name__)

# tracer(span_name, attributes) -> context manager wrapping the dispatch
Tracer = Callable[[str, dict[str, Any]], ContextManager[Any]]


def _no_trace(name: str, attributes: dict[str, Any]) -> ContextManager[Any]:
    return contextlib.nullcontext()


class Client:
    """HTTP client with encoded parameters, interceptors, retry and cookies.

    Usage:
        client = Client(ClientConfig(prefix="https://api.example.com"))
        try:
            with client.post("/items", {"name": "widget"}) as resp:
                print(resp.status_code)
        finally:
            client.close()

    Or with context manager:
        with Client.from_config(Path("client.yaml")) as client:
            ...

    The header map and cookie store are lock-guarded, so configuration calls
    and browser-mode cookie updates are safe from multiple threads. Other
    settings are plain attributes; change them before sharing the client.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.Client | None = None,
        tracer: Tracer | None = None,
        wait: WaitFunc | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Initial configuration. Defaults to ClientConfig().
            transport: httpx client to send with. When omitted one is created
                from the config and closed by ``close()``.
            tracer: Span factory called with the request URL around each
                dispatch.
            wait: Replacement for the context-aware retry wait, for tests.
        """
        config = config or ClientConfig()
        self._owns_transport = transport is None
        self._transport = transport or httpx.Client(**self._build_transport_kwargs(config))
        self._tracer = tracer or _no_trace
        self._wait = wait

        self._header_lock = Lock()
        self._headers: dict[str, str] = {}
        for key, value in config.headers.items():
            self.set_header(key, value)
        if config.content_type:
            self.set_content_type(config.content_type)

        self._cookies = CookieStore(config.cookies)
        self._username = config.basic_auth.username if config.basic_auth else None
        self._password = config.basic_auth.password if config.basic_auth else ""
        self._agent = config.agent
        self._prefix = config.prefix
        self._retry_count = config.retry.count
        self._retry_interval = config.retry.interval
        self._interceptors: list[Interceptor] = []
        self._context: RequestContext | None = None
        self._browser_mode = config.browser_mode

    @classmethod
    def from_config(cls, config_path: Path, **kwargs: Any) -> Client:
        """Create a client from a YAML config file."""
        return cls(load_client_config(config_path), **kwargs)

    def __enter__(self) -> Client:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            self._transport.close()

    @staticmethod
    def _build_transport_kwargs(config: ClientConfig) -> dict[str, Any]:
        """Build kwargs for httpx.Client including TLS configuration.

        Cookies live in the CookieStore, so the transport jar refuses every
        cookie instead of accumulating ones nothing reads.
        """
        kwargs: dict[str, Any] = {
            "timeout": config.timeout,
            "cookies": CookieJar(policy=DefaultCookiePolicy(allowed_domains=[])),
        }
        if config.cert and config.key:
            kwargs["cert"] = (config.cert, config.key)
        if config.ca_bundle:
            kwargs["verify"] = config.ca_bundle
        elif not config.verify_ssl:
            kwargs["verify"] = False
        return kwargs

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_header(self, name: str, value: str) -> None:
        """Set a default header. Names are unique case-insensitively; last set wins."""
        lowered = name.lower()
        with self._header_lock:
            for key in [k for k in self._headers if k.lower() == lowered]:
                del self._headers[key]
            self._headers[name] = value

    def set_header_map(self, headers: dict[str, str]) -> None:
        for name, value in headers.items():
            self.set_header(name, value)

    def set_header_raw(self, raw: str) -> None:
        """Set headers from ``Name: value`` lines."""
        for line in raw.splitlines():
            name, sep, value = line.partition(":")
            if sep and name.strip():
                self.set_header(name.strip(), value.strip())

    def remove_header(self, name: str) -> None:
        lowered = name.lower()
        with self._header_lock:
            for key in [k for k in self._headers if k.lower() == lowered]:
                del self._headers[key]

    @property
    def headers(self) -> dict[str, str]:
        """Copy of the default headers."""
        with self._header_lock:
            return dict(self._headers)

    def set_content_type(self, content_type: str) -> None:
        self.set_header("Content-Type", content_type)

    def set_cookie(self, name: str, value: str) -> None:
        self._cookies.set(name, value)

    def set_cookie_map(self, cookies: dict[str, str]) -> None:
        self._cookies.update(cookies)

    @property
    def cookies(self) -> CookieStore:
        return self._cookies

    def set_basic_auth(self, username: str, password: str) -> None:
        self._username = username
        self._password = password

    def set_agent(self, agent: str) -> None:
        self._agent = agent

    def set_prefix(self, prefix: str) -> None:
        self._prefix = prefix

    def set_retry(self, count: int, interval: float) -> None:
        """Allow *count* retries (count + 1 attempts), *interval* seconds apart."""
        if count < 0:
            raise ValueError("retry count must be >= 0")
        self._retry_count = count
        self._retry_interval = interval

    def set_context(self, context: RequestContext | None) -> None:
        self._context = context

    def set_browser_mode(self, enabled: bool) -> None:
        self._browser_mode = enabled

    @property
    def browser_mode(self) -> bool:
        return self._browser_mode

    def use(self, *interceptors: Interceptor) -> None:
        """Append interceptors to the middleware chain, in call order."""
        self._interceptors.extend(interceptors)

    # -------------------------------------------------------------------------
    # Verbs
    # -------------------------------------------------------------------------

    def get(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("GET", url, data)

    def put(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("PUT", url, data)

    def post(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("POST", url, data)

    def delete(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("DELETE", url, data)

    def head(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("HEAD", url, data)

    def patch(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("PATCH", url, data)

    def connect(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("CONNECT", url, data)

    def options(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("OPTIONS", url, data)

    def trace(self, url: str, data: Any = None) -> ClientResponse:
        return self.do_request("TRACE", url, data)

    def do_request(self, method: str, url: str, data: Any = None) -> ClientResponse:
        """Send a request and return the response. The caller must close it.

        Without an explicit Content-Type, a body with ``@file:`` fields is
        sent as multipart/form-data, a JSON-looking body as application/json
        and a ``name=value`` body as application/x-www-form-urlencoded.

        Raises:
            EncodingError: If the request cannot be built (nothing is sent).
            httpx.HTTPError: The last transport error after all retries.
            RequestCancelledError: If the client context ends the call.
        """
        request = build_request(self._defaults(), method, url, data)

        with self._tracer(request.url, {"http.method": request.method, "http.headers": dict(request.headers)}):
            try:
                response = self._dispatch(request)
            except httpx.HTTPStatusError as e:
                self._sync_cookies(e.response)
                raise

        self._sync_cookies(response.raw)
        return response

    def _defaults(self) -> RequestDefaults:
        return RequestDefaults(
            prefix=self._prefix,
            headers=self.headers,
            cookie_header=self._cookies.header_value(),
            username=self._username,
            password=self._password,
            agent=self._agent,
            context=self._context,
        )

    def _dispatch(self, request: OutboundRequest) -> ClientResponse:
        logger.debug("Dispatching %s %s", request.method, request.url)
        if self._interceptors:
            chain = MiddlewareChain(tuple(self._interceptors), self._call_request)
            return chain.dispatch(self, request)
        return self._call_request(request)

    def _call_request(self, request: OutboundRequest) -> ClientResponse:
        """Terminal handler: send with retry."""
        executor = RetryExecutor(
            self._transport,
            retry_count=self._retry_count,
            retry_interval=self._retry_interval,
            wait=self._wait,
        )
        return executor.execute(request)

    def _sync_cookies(self, response: httpx.Response | None) -> None:
        if self._browser_mode and response is not None:
            self._cookies.sync(response)
