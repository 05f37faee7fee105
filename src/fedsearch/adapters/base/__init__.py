"""Base source interface — Abstract classes for federated catalog connectors."""

from fedsearch.adapters.base.adapter import FederatedSource, SourceHealth

__all__ = ["FederatedSource", "SourceHealth"]
