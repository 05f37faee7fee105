"""Transformer Registry — Namespace-keyed bindings of content transformers.

The registry replaces ambient service discovery: whoever builds a source
decides which transformers it can use and injects the registry.
"""

from __future__ import annotations

import logging

from fedsearch.adapters.base.exceptions import AmbiguousTransformerError
from fedsearch.transformers.base import InputTransformer

logger = logging.getLogger(__name__)


class TransformerRegistry:
    """Registry of transformers keyed by XML namespace URI.

    A namespace may carry several bindings; ``resolve()`` only succeeds
    when exactly one is registered.

    Example:
        >>> registry = TransformerRegistry()
        >>> registry.register("urn:catalog:metacard", MetacardXmlTransformer())
        >>> transformer = registry.resolve("urn:catalog:metacard")
    """

    def __init__(self) -> None:
        self._bindings: dict[str, list[InputTransformer]] = {}

    def register(self, namespace: str, transformer: InputTransformer) -> None:
        """Bind *transformer* to *namespace*.

        Args:
            namespace: XML namespace URI ("" for documents without one).
            transformer: The transformer to bind.
        """
        bound = self._bindings.setdefault(namespace, [])
        if bound:
            logger.warning("Namespace %s now has %d transformer bindings", namespace, len(bound) + 1)
        bound.append(transformer)
        logger.info("Registered transformer %s for namespace %s", transformer.name, namespace)

    def unregister(self, namespace: str, transformer: InputTransformer) -> None:
        """Remove a binding. Unknown bindings are ignored."""
        bound = self._bindings.get(namespace, [])
        if transformer in bound:
            bound.remove(transformer)
        if not bound:
            self._bindings.pop(namespace, None)

    def bindings(self, namespace: str) -> list[InputTransformer]:
        """All transformers bound to *namespace* (possibly empty)."""
        return list(self._bindings.get(namespace, []))

    def resolve(self, namespace: str) -> InputTransformer | None:
        """Return the single transformer bound to *namespace*.

        Returns:
            The transformer, or None if nothing is bound.

        Raises:
            AmbiguousTransformerError: If more than one transformer is bound.
        """
        bound = self._bindings.get(namespace, [])
        if len(bound) > 1:
            raise AmbiguousTransformerError(namespace, len(bound))
        return bound[0] if bound else None

    @property
    def namespaces(self) -> list[str]:
        """List all namespaces with at least one binding."""
        return list(self._bindings.keys())
