"""Parameter encoder - turns one caller-supplied value into a request body.

The client's Content-Type selects the mode:

- ``application/json``: strings and bytes pass through untouched, anything
  else is marshaled with ``json``.
- ``application/xml``: same passthrough rule, marshaled with ``dict_to_xml``.
- anything else: the value is flattened into a ``key=value&key=value`` form
  string. The flattened pairs are also kept as a structured list so the
  multipart builder never has to re-parse the string.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus

from pydantic import BaseModel

from request_pipeline.xml_body import dict_to_xml

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_XML = "application/xml"
CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"

# Field value prefix that marks a file upload, e.g. "@file:/tmp/report.pdf".
FILE_MARKER = "@file:"


class EncodingError(Exception):
    """Raised when a request body cannot be built. Nothing is sent."""


@dataclass(frozen=True)
class EncodedBody:
    """Result of encoding one parameter value.

    ``fields`` is None for JSON/XML bodies, which are never form fields.
    """

    text: str = ""
    fields: tuple[tuple[str, str], ...] | None = ()

    @property
    def has_file_fields(self) -> bool:
        if not self.fields:
            return False
        return any(is_file_reference(value) for _, value in self.fields)


def is_file_reference(value: str) -> bool:
    """True if *value* is ``@file:`` followed by a non-empty path."""
    return len(value) > len(FILE_MARKER) and value.startswith(FILE_MARKER)


def encode_parameter(value: Any, content_type: str | None) -> EncodedBody:
    """Encode *value* according to the negotiated *content_type*.

    Args:
        value: Caller data. None produces an empty body.
        content_type: Content-Type configured on the client, if any.

    Returns:
        EncodedBody with the body text and, for form mode, its fields.

    Raises:
        EncodingError: If JSON or XML marshaling fails.
    """
    if value is None:
        return EncodedBody()

    if content_type == CONTENT_TYPE_JSON:
        if isinstance(value, (str, bytes, bytearray)):
            return EncodedBody(text=_to_text(value), fields=None)
        try:
            return EncodedBody(text=_marshal_json(value), fields=None)
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Cannot encode parameter as JSON: {e}") from e

    if content_type == CONTENT_TYPE_XML:
        if isinstance(value, (str, bytes, bytearray)):
            return EncodedBody(text=_to_text(value), fields=None)
        try:
            return EncodedBody(text=dict_to_xml(_to_mapping(value)).decode("utf-8"), fields=None)
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Cannot encode parameter as XML: {e}") from e

    return build_params(value)


def build_params(value: Any) -> EncodedBody:
    """Flatten *value* into a form-encoded body.

    Strings and bytes are returned unchanged; their fields are recovered by
    splitting on ``&`` and then on the first ``=``, so for string input a
    value containing either character cannot be told apart from a separator.

    Mappings, dataclasses and pydantic models are flattened by key in
    insertion order. List values repeat the key. Values are URL-encoded
    unless any value is a file reference, in which case the whole body is
    left raw for the multipart builder.

    A top-level sequence is rendered as a JSON array and a number or bool as
    its literal text; neither yields fields.

    Raises:
        EncodingError: If the value or a nested value has no text form.
    """
    if value is None:
        return EncodedBody()
    if isinstance(value, (str, bytes, bytearray)):
        text = _to_text(value)
        return EncodedBody(text=text, fields=parse_params(text))

    try:
        if isinstance(value, (list, tuple, set, frozenset, int, float)):
            return EncodedBody(text=_scalar_to_str(value), fields=())
        fields = _flatten(_to_mapping(value))
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Cannot encode parameter as form fields: {e}") from e

    url_encode = not any(is_file_reference(v) for _, v in fields)
    if url_encode:
        text = "&".join(f"{k}={quote_plus(v)}" for k, v in fields)
    else:
        text = "&".join(f"{k}={v}" for k, v in fields)
    return EncodedBody(text=text, fields=tuple(fields))


def parse_params(text: str) -> tuple[tuple[str, str], ...]:
    """Split a ``name=value&name=value`` string into pairs.

    Items without ``=`` become a name with an empty value. Empty items are
    skipped.
    """
    pairs: list[tuple[str, str]] = []
    for item in text.split("&"):
        if not item:
            continue
        name, _, value = item.partition("=")
        pairs.append((name, value))
    return tuple(pairs)


def _flatten(mapping: Mapping[str, Any]) -> list[tuple[str, str]]:
    fields: list[tuple[str, str]] = []
    for key, item in mapping.items():
        if isinstance(item, (list, tuple, set, frozenset)):
            for element in item:
                fields.append((str(key), _scalar_to_str(element)))
        else:
            fields.append((str(key), _scalar_to_str(item)))
    return fields


def _to_text(value: str | bytes | bytearray) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="surrogateescape")
    return value


def _to_mapping(value: Any) -> Mapping[str, Any]:
    """Convert a struct-like value into a mapping keyed by field name."""
    if isinstance(value, Mapping):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"{type(value).__name__} cannot be flattened into fields")


def _marshal_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _scalar_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray)):
        return _to_text(value)
    if isinstance(value, (set, frozenset)):
        value = list(value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)
