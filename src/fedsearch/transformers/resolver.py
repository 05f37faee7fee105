"""Transformer Resolver — Picks a transformer by sniffing a document's namespace."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from fedsearch.adapters.base.exceptions import AmbiguousTransformerError, TransformError
from fedsearch.models.record import Record
from fedsearch.transformers.base import Content, InputTransformer, open_content
from fedsearch.transformers.registry import TransformerRegistry

logger = logging.getLogger(__name__)


def _namespace_of(tag: str) -> str:
    if tag.startswith("{"):
        return tag[1 : tag.index("}")]
    return ""


class TransformerResolver:
    """Resolves raw documents to records through a ``TransformerRegistry``.

    Only the namespace of the first start element is considered. A
    document whose root namespace has no binding is not transformed even if
    nested elements carry a known namespace.

    Args:
        registry: Namespace-to-transformer bindings.
    """

    def __init__(self, registry: TransformerRegistry) -> None:
        self.registry = registry

    def sniff_namespace(self, data: Content) -> str | None:
        """Return the namespace URI of the first start element.

        Returns:
            The namespace ("" when the element has none), or None when the
            content is empty or not well-formed XML.
        """
        stream = open_content(data)
        try:
            for _event, element in ET.iterparse(stream, events=("start",)):
                return _namespace_of(element.tag)
        except ET.ParseError:
            logger.debug("Failed to parse transformer namespace", exc_info=True)
        return None

    def find_transformer(self, data: Content) -> InputTransformer | None:
        """Find the single transformer registered for the document's namespace."""
        namespace = self.sniff_namespace(data)
        if namespace is None:
            return None
        try:
            return self.registry.resolve(namespace)
        except AmbiguousTransformerError:
            logger.error("Ambiguous transformer schema %s", namespace)
            return None

    def resolve(self, data: Content, identifier: str | None = None) -> Record | None:
        """Transform *data* with the matching transformer.

        Args:
            data: The raw document.
            identifier: Identifier passed through to the transformer.

        Returns:
            The record, or None if no transformer matched or it failed.
        """
        transformer = self.find_transformer(data)
        if transformer is None:
            return None
        try:
            return transformer.transform(open_content(data), identifier)
        except TransformError:
            logger.warning("Unable to convert content into a record (id=%s)", identifier, exc_info=True)
            return None
