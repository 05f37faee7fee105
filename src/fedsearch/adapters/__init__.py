"""Federated source layer — Connectors that answer catalog queries remotely.

Built-in sources:
  - opensearch: OpenSearch-protocol endpoints returning Atom/RSS feeds

Implement ``FederatedSource`` to connect another remote catalog.
"""
