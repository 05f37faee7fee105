"""Application settings — Pydantic-based configuration with YAML and env var support.

Configuration is loaded from (in order of precedence):
  1. Environment variables (FEDSEARCH_ prefix)
  2. YAML config file (if specified)
  3. Default values
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_PARAMETERS = [
    "q",
    "src",
    "mr",
    "start",
    "count",
    "mt",
    "dn",
    "lat",
    "lon",
    "radius",
    "bbox",
    "polygon",
    "dtstart",
    "dtend",
    "dateName",
    "filter",
    "sort",
]


class SourceSettings(BaseModel):
    """Configuration for the remote OpenSearch endpoint."""

    endpoint_url: str = Field(
        default="https://localhost:8993/services/catalog/query",
        description="OpenSearch endpoint URL",
    )
    shortname: str = Field(default="opensearch", description="Source id stamped on every returned record")
    parameters: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PARAMETERS),
        description="Allow-list of OpenSearch query parameter names",
    )
    local_query_only: bool = Field(default=False, description="Restrict remote queries to the remote's local catalog")
    convert_to_bbox: bool = Field(default=False, description="Send point-radius and polygon filters as bounding boxes")
    username: str | None = Field(default=None, description="Basic-auth username")
    password: str | None = Field(default=None, description="Basic-auth password")
    receive_timeout: float = Field(default=30.0, gt=0, description="Request and parse timeout in seconds")
    verify_certs: bool = Field(default=True, description="Whether to verify TLS certificates")
    availability_window: float = Field(default=60.0, ge=0, description="Seconds a positive availability probe is trusted")
    spill_threshold: int = Field(default=1_000_000, gt=0, description="Bytes held in memory before spilling to disk")

    @field_validator("parameters", mode="before")
    @classmethod
    def _split_parameters(cls, v: Any) -> list[str]:
        """Accept a comma-joined string, or a single-element list holding one."""
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        items = list(v)
        if len(items) == 1 and isinstance(items[0], str) and "," in items[0]:
            return [p.strip() for p in items[0].split(",") if p.strip()]
        return items


class ObservabilitySettings(BaseModel):
    """Observability configuration."""

    log_level: str = Field(default="info", description="Log level: debug, info, warning, error")
    log_format: str = Field(default="json", description="Log format: json, console")


class Settings(BaseSettings):
    """Root application settings.

    Configuration is loaded from environment variables with the FEDSEARCH_ prefix.
    Nested settings use double underscores: FEDSEARCH_SOURCE__ENDPOINT_URL=...

    Example:
        FEDSEARCH_SOURCE__ENDPOINT_URL=https://remote:8993/services/catalog/query
        FEDSEARCH_SOURCE__SHORTNAME=remote-ddf
        FEDSEARCH_SOURCE__PARAMETERS='["q", "src", "start", "count"]'
    """

    model_config = {
        "env_prefix": "FEDSEARCH_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    source: SourceSettings = Field(default_factory=SourceSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML configuration file.

        Values from the YAML file are passed as init arguments, so they
        override both environment variables and defaults.

        Args:
            path: Path to the YAML config file.

        Returns:
            Populated Settings instance.
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)
