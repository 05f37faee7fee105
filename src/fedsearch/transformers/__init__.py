"""Content transformers — Turn raw metadata documents into records.

Transformers are bound to the XML namespace of the documents they
understand. The resolver sniffs a document's first namespace and looks it
up in a ``TransformerRegistry``.
"""

from fedsearch.transformers.base import InputTransformer
from fedsearch.transformers.metacard import METACARD_NAMESPACE, MetacardXmlTransformer, default_registry
from fedsearch.transformers.registry import TransformerRegistry
from fedsearch.transformers.resolver import TransformerResolver

__all__ = [
    "METACARD_NAMESPACE",
    "InputTransformer",
    "MetacardXmlTransformer",
    "TransformerRegistry",
    "TransformerResolver",
    "default_registry",
]
