"""Request builder - assembles one OutboundRequest from client defaults and data.

Body handling by method:

- GET: the encoded body is appended to the URL query string; the request
  body is empty.
- other methods: a form body carrying a ``@file:<path>`` field value is
  re-encoded as multipart/form-data with the file contents uploaded;
  anything else is sent as raw bytes with a negotiated Content-Type.
"""

from __future__ import annotations

import base64
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

import httpx

from request_pipeline.context import RequestContext
from request_pipeline.encoder import (
    CONTENT_TYPE_FORM,
    CONTENT_TYPE_JSON,
    FILE_MARKER,
    EncodedBody,
    EncodingError,
    encode_parameter,
    is_file_reference,
)
from request_pipeline.models import HTTP_METHODS, OutboundRequest

logger = logging.getLogger(__name__)

# "name=value" shaped bodies, e.g. "a=1" or "ids[]=3"
_FORM_BODY_PATTERN = re.compile(r"^[\w\[\]]+=.+")


class FileUploadError(EncodingError):
    """Raised when a ``@file:`` field references a missing or unreadable file."""


@dataclass(frozen=True)
class RequestDefaults:
    """Snapshot of the client state a request is built from.

    Taken once per call so that concurrent configuration changes cannot
    tear a single request.
    """

    prefix: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    cookie_header: str = ""
    username: str | None = None
    password: str = ""
    agent: str | None = None
    context: RequestContext | None = None

    @property
    def content_type(self) -> str | None:
        return header_lookup(self.headers, "Content-Type")


def header_lookup(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup."""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def build_request(
    defaults: RequestDefaults,
    method: str,
    url: str,
    data: Any = None,
) -> OutboundRequest:
    """Build the OutboundRequest for one call.

    Args:
        defaults: Client state snapshot.
        method: HTTP method (case-insensitive).
        url: Path or URL; the client prefix is prepended.
        data: Parameter value, encoded per the client's Content-Type.

    Returns:
        Fully populated OutboundRequest.

    Raises:
        EncodingError: If the method is unknown or the body cannot be encoded.
        FileUploadError: If an upload path does not exist or cannot be read.
    """
    method = method.upper()
    if method not in HTTP_METHODS:
        raise EncodingError(f"Unsupported HTTP method: {method}")

    url = defaults.prefix + url.strip()
    content_type = defaults.content_type
    encoded = encode_parameter(data, content_type)

    headers: dict[str, str] = {}
    multipart = False
    if method == "GET":
        if encoded.text:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{encoded.text}"
        body = b""
    elif encoded.has_file_fields:
        body, headers["Content-Type"] = encode_multipart(method, url, encoded)
        multipart = True
    else:
        body = encoded.text.encode("utf-8", errors="surrogateescape")
        negotiated = negotiate_content_type(body, content_type)
        if negotiated is not None:
            headers["Content-Type"] = negotiated

    for key, value in defaults.headers.items():
        if multipart and key.lower() == "content-type":
            continue
        _set_header(headers, key, value)

    request = OutboundRequest(
        method=method,
        url=url,
        body=body,
        headers=headers,
        context=defaults.context or RequestContext.background(),
    )

    host = header_lookup(headers, "Host")
    if host and not request.host:
        request.host = host

    if defaults.cookie_header:
        _set_header(headers, "Cookie", defaults.cookie_header)

    if defaults.username:
        credentials = f"{defaults.username}:{defaults.password}".encode("utf-8")
        _set_header(headers, "Authorization", "Basic " + base64.b64encode(credentials).decode("ascii"))

    if defaults.agent:
        _set_header(headers, "User-Agent", defaults.agent)

    return request


def negotiate_content_type(body: bytes, explicit: str | None) -> str | None:
    """Pick the Content-Type for a raw body.

    An explicit value wins. Otherwise a body starting with ``[`` or ``{``
    that parses as JSON is JSON, a ``name=value`` shaped body is form data,
    and anything else gets no Content-Type.
    """
    if explicit:
        return explicit
    if not body:
        return None
    if body[:1] in (b"[", b"{") and _is_valid_json(body):
        return CONTENT_TYPE_JSON
    if _FORM_BODY_PATTERN.match(body.decode("utf-8", errors="replace")):
        return CONTENT_TYPE_FORM
    return None


def encode_multipart(method: str, url: str, encoded: EncodedBody) -> tuple[bytes, str]:
    """Encode form fields as multipart/form-data, uploading ``@file:`` values.

    Every file is validated and read before any part is produced, so a bad
    path never yields a partial body.

    Returns:
        (body bytes, Content-Type with boundary)

    Raises:
        FileUploadError: If a referenced path does not exist or cannot be read.
    """
    data: dict[str, list[str]] = {}
    files: list[tuple[str, tuple[str, bytes]]] = []
    for name, value in encoded.fields or ():
        if is_file_reference(value):
            path = Path(value[len(FILE_MARKER):])
            files.append((name, (path.name, _read_upload(path))))
        else:
            data.setdefault(name, []).append(value)

    multipart = httpx.Request(method, url, data=data, files=files)
    return multipart.read(), multipart.headers["Content-Type"]


def _read_upload(path: Path) -> bytes:
    """Read an upload file. Close failures after a good read are logged."""
    if not path.exists():
        raise FileUploadError(f'"{path}" does not exist')
    try:
        handle = open(path, "rb")
    except OSError as e:
        raise FileUploadError(f'Cannot open "{path}": {e}') from e
    try:
        return handle.read()
    except OSError as e:
        raise FileUploadError(f'Cannot read "{path}": {e}') from e
    finally:
        _close_upload(handle, path)


def _close_upload(handle: IO[bytes], path: Path) -> None:
    try:
        handle.close()
    except OSError:
        logger.exception('Failed to close upload file "%s"', path)


def _set_header(headers: dict[str, str], name: str, value: str) -> None:
    """Set *name*, replacing any existing key that differs only in case."""
    lowered = name.lower()
    for key in [k for k in headers if k.lower() == lowered]:
        del headers[key]
    headers[name] = value


def _is_valid_json(body: bytes) -> bool:
    try:
        json.loads(body)
    except ValueError:
        return False
    return True
