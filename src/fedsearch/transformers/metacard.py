"""Metacard XML transformer — Reads the catalog's native metacard XML format.

Document shape::

    <metacard xmlns="urn:catalog:metacard" xmlns:gml="http://www.opengis.net/gml" gml:id="abc123">
      <type>ddf.metacard</type>
      <source>remote-ddf</source>
      <string name="title"><value>Harbor survey</value></string>
      <dateTime name="modified"><value>2024-03-01T12:00:00Z</value></dateTime>
      <geometry name="location"><value><gml:Point>...</gml:Point></value></geometry>
    </metacard>
"""

from __future__ import annotations

import contextlib
import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from fedsearch.adapters.base.exceptions import TransformError
from fedsearch.models.record import Record
from fedsearch.transformers.base import Content, InputTransformer, open_content
from fedsearch.transformers.registry import TransformerRegistry

logger = logging.getLogger(__name__)

METACARD_NAMESPACE = "urn:catalog:metacard"
GML_NAMESPACE = "http://www.opengis.net/gml"

_NS = f"{{{METACARD_NAMESPACE}}}"

# Attribute names that map onto dedicated Record fields
_FIELD_MAP = {
    "id": "id",
    "title": "title",
    "metadata-content-type": "content_type",
    "metadata-content-type-version": "content_type_version",
    "metadata": "metadata",
    "resource-uri": "resource_uri",
    "created": "created",
    "modified": "modified",
    "location": "location",
}


def _parse_datetime(text: str) -> datetime | str:
    with contextlib.suppress(ValueError):
        return datetime.fromisoformat(text.strip())
    return text.strip()


def _convert(kind: str, value: ET.Element) -> Any:
    if kind in ("geometry", "stringxml"):
        children = list(value)
        if children:
            return ET.tostring(children[0], encoding="unicode")
        return (value.text or "").strip()

    text = (value.text or "").strip()
    if kind == "dateTime":
        return _parse_datetime(text)
    if kind in ("int", "long", "short"):
        with contextlib.suppress(ValueError):
            return int(text)
    elif kind in ("double", "float"):
        with contextlib.suppress(ValueError):
            return float(text)
    elif kind == "boolean":
        return text.lower() == "true"
    return text


class MetacardXmlTransformer(InputTransformer):
    """Transformer for ``urn:catalog:metacard`` documents."""

    namespace = METACARD_NAMESPACE

    def transform(self, data: Content, identifier: str | None = None) -> Record:
        stream = open_content(data)
        raw = stream.read()
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as e:
            raise TransformError(f"Malformed metacard XML: {e}") from e

        if root.tag != f"{_NS}metacard":
            raise TransformError(f"Unsupported root element: {root.tag}")

        fields: dict[str, Any] = {}
        attributes: dict[str, Any] = {}

        gml_id = root.get(f"{{{GML_NAMESPACE}}}id")
        if gml_id:
            fields["id"] = gml_id

        for child in root:
            if not child.tag.startswith(_NS):
                continue
            kind = child.tag[len(_NS) :]
            if kind == "type":
                attributes["metacard-type"] = (child.text or "").strip()
                continue
            if kind == "source":
                fields["source_id"] = (child.text or "").strip() or None
                continue

            name = child.get("name")
            if not name:
                continue
            values = [_convert(kind, v) for v in child.findall(f"{_NS}value")]
            if not values:
                continue

            if name in _FIELD_MAP:
                fields[_FIELD_MAP[name]] = values[0]
            else:
                attributes[name] = values[0] if len(values) == 1 else values

        for key in ("created", "modified"):
            if key in fields and not isinstance(fields[key], datetime):
                attributes[key] = fields.pop(key)

        if identifier:
            fields["id"] = identifier
        if "metadata" not in fields:
            fields["metadata"] = raw.decode("utf-8", errors="replace")

        try:
            return Record(**fields, attributes=attributes)
        except ValidationError as e:
            raise TransformError(f"Metacard values do not fit a record: {e}") from e


def default_registry() -> TransformerRegistry:
    """Create a registry with the built-in transformers bound."""
    registry = TransformerRegistry()
    registry.register(METACARD_NAMESPACE, MetacardXmlTransformer())
    return registry
