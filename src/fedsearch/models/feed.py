"""Syndicated feed models — The parsed shape of an Atom or RSS response."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

_INTEGER = re.compile(r"[+-]?[0-9]+")


class FeedEntry(BaseModel):
    """A single Atom entry or RSS item."""

    uri: str | None = Field(default=None, description="Entry URI (Atom id / RSS guid)")
    title: str | None = Field(default=None, description="Entry title")
    contents: list[str] = Field(default_factory=list, description="Content blobs in document order")
    categories: list[str] = Field(default_factory=list, description="Category names in document order")
    foreign: dict[str, str] = Field(default_factory=dict, description="Extension markup, keyed by local name")

    @property
    def score(self) -> str | None:
        return self.foreign.get("score")


class FeedDocument(BaseModel):
    """A parsed feed: its entries and feed-level extension markup."""

    entries: list[FeedEntry] = Field(default_factory=list, description="Entries in document order")
    foreign: dict[str, str] = Field(default_factory=dict, description="Extension markup, keyed by local name")

    @property
    def total_results_hint(self) -> int | None:
        """The ``totalResults`` extension as an int, if present and parseable."""
        value = self.foreign.get("totalResults")
        if value is None:
            return None
        text = value.strip()
        if not _INTEGER.fullmatch(text):
            return None
        return int(text)
