"""FedSearch — OpenSearch federation adapter for catalog queries."""

__version__ = "0.1.0"
