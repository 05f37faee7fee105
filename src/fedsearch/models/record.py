"""Record and result models — Uniform output of every federated query.

A ``Record`` is the structured form of one remote metadata document. A
``ResultRecord`` wraps it with the relevance reported by the remote
endpoint, and a ``QueryOutcome`` is the page of results for one query.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Record(BaseModel):
    """A catalog record produced by a content transformer.

    Every field has an empty default, so ``Record()`` is the placeholder
    used when a document could not be transformed.
    """

    id: str | None = Field(default=None, description="Record identifier")
    title: str | None = Field(default=None, description="Record title")
    content_type: str | None = Field(default=None, description="Metadata content type name")
    content_type_version: str | None = Field(default=None, description="Metadata content type version")
    source_id: str | None = Field(default=None, description="Id of the source that produced this record")
    metadata: str | None = Field(default=None, description="Raw metadata document (XML)")
    resource_uri: str | None = Field(default=None, description="URI of the product the record describes")
    created: datetime | None = Field(default=None, description="Creation timestamp")
    modified: datetime | None = Field(default=None, description="Last modification timestamp")
    location: str | None = Field(default=None, description="Footprint geometry (WKT or GML text)")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Any other transformed attributes")


class ResultRecord(BaseModel):
    """One record plus the relevance the remote endpoint gave it."""

    record: Record = Field(default_factory=Record, description="Transformed record or empty placeholder")
    relevance_score: float = Field(default=0.0, description="Relevance reported by the remote endpoint")
    source_id: str = Field(default="", description="Id of the source that produced this result")


class QueryOutcome(BaseModel):
    """A page of results and the remote total hit count."""

    records: list[ResultRecord] = Field(default_factory=list, description="Results in document order")
    total_hits: int = Field(default=0, description="Total number of matches reported by the remote")
