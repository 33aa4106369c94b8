"""Python value to XML conversion for request bodies.

Used by the parameter encoder when the client's Content-Type is
``application/xml`` and the caller passes a structured value rather than a
pre-serialized string.

Limitation: XML attributes and namespaces are not emitted. Element names are
taken directly from mapping keys, so keys must be valid XML names.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Mapping
from typing import Any

# Root element used when a mapping does not have exactly one top-level key.
DEFAULT_ROOT = "doc"


def dict_to_xml(data: Mapping[str, Any]) -> bytes:
    """Convert a mapping to XML bytes for use as an HTTP request body.

    A mapping with exactly one top-level key uses that key as the root
    element. Any other mapping is wrapped in a ``<doc>`` root so that
    ``{"a": 1, "b": 2}`` becomes ``<doc><a>1</a><b>2</b></doc>``.

    Nested mappings become child elements. Lists become repeated sibling
    elements with the same tag name. ``None`` values become empty elements
    (``<Tag/>``). Booleans render as ``true``/``false``; other scalars use
    ``str()``.

    Args:
        data: Mapping to serialize.

    Returns:
        UTF-8 encoded XML bytes with an XML declaration.

    Raises:
        ValueError: If *data* is not a mapping, or a key is not a valid
            element name.
    """
    if not isinstance(data, Mapping):
        raise ValueError(
            f"dict_to_xml expects a mapping, got {type(data).__name__}"
        )

    if len(data) == 1:
        root_tag = next(iter(data))
        root_element = _value_to_element(str(root_tag), data[root_tag])
    else:
        root_element = _value_to_element(DEFAULT_ROOT, data)

    return ET.tostring(root_element, encoding="utf-8", xml_declaration=True)


def _value_to_element(tag: str, value: Any) -> ET.Element:
    """Recursively convert a tag + value pair into an XML Element.

    - mapping → element with child sub-elements for each key
    - list/tuple → caller handles by creating repeated sibling elements
    - scalar → element with text content
    - None → empty element
    """
    if not tag or not (tag[0].isalpha() or tag[0] == "_"):
        raise ValueError(f"invalid XML element name: {tag!r}")
    element = ET.Element(tag)

    if value is None:
        pass
    elif isinstance(value, Mapping):
        for key, child_value in value.items():
            key = str(key)
            if isinstance(child_value, (list, tuple)):
                for item in child_value:
                    element.append(_value_to_element(key, item))
            else:
                element.append(_value_to_element(key, child_value))
    elif isinstance(value, (list, tuple)):
        # Only reachable for a list directly under the root key
        for item in value:
            element.append(_value_to_element("item", item))
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    else:
        element.text = str(value)

    return element
