"""Configuration management for cragdata.

Two layers:
- Settings: process-wide settings from environment variables / .env
- SourceDefinition: the registry of named sources, loaded from a JSON file

Usage:
    from cragdata.config import settings, load_source_definitions

    definitions = load_source_definitions(settings.sources_file)
    print(settings.cache_dir)

Sources file format:
    {
      "sources": {
        "summits":   {"enabled": true, "config": {"input_file": "input/summits.html"}},
        "locations": {"enabled": true, "type": "locations",
                      "config": {"input_file": "input/osm.geojson"},
                      "dependencies": ["summits"]}
      }
    }
"""

import json
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cragdata.core.errors import ErrorCategory, ProcessingError


class Settings(BaseSettings):
    """cragdata configuration from environment variables.

    Loads from .env file automatically. Validates on instantiation.

    Attributes:
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR)
        cache_dir: Directory for the JSON cache
        cache_enabled: Global switch for source caching
        sources_file: JSON file holding the source definitions
        export_dir: Directory for Parquet dataset exports
        http_timeout: Timeout for HTTP sources (seconds)
        http_rate_limit: Requests/second for HTTP sources
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Logging level")
    cache_dir: str = Field(default="cache", description="JSON cache directory")
    cache_enabled: bool = Field(default=True, description="Enable source caching")
    sources_file: str = Field(default="sources.json", description="Source definitions file")
    export_dir: str = Field(default="export", description="Parquet export directory")

    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout (seconds)")
    http_rate_limit: int = Field(default=5, ge=1, description="HTTP requests/second")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v_upper


class SourceDefinition(BaseModel):
    """Static configuration of one named source."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1)
    enabled: StrictBool
    type_: str | None = Field(default=None, alias="type")
    config: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def lift_nested_dependencies(cls, data: Any) -> Any:
        """Accept ``config.dependencies`` when no top-level list is given."""
        if isinstance(data, dict) and "dependencies" not in data:
            nested = (data.get("config") or {}).get("dependencies")
            if isinstance(nested, list):
                data = {**data, "dependencies": nested}
        return data

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v: list[str]) -> list[str]:
        if any(not isinstance(dep, str) or not dep for dep in v):
            raise ValueError("dependencies must be non-empty source names")
        return v

    @property
    def source_type(self) -> str:
        """Registry key of the concrete source (defaults to the name)."""
        return self.type_ or self.name


def parse_source_definitions(raw: Mapping[str, Any]) -> dict[str, SourceDefinition]:
    """Validate a mapping of source name -> definition fields.

    Accepts either ``{"sources": {...}}`` or the inner mapping itself.

    Raises:
        ProcessingError: config-error naming the first invalid source
    """
    sources = raw.get("sources", raw) if isinstance(raw, Mapping) else None
    if not isinstance(sources, Mapping):
        raise ProcessingError(
            "Source definitions must be an object",
            ErrorCategory.CONFIG_ERROR,
            "config",
        )

    definitions: dict[str, SourceDefinition] = {}
    for name, fields in sources.items():
        if not isinstance(fields, Mapping):
            raise ProcessingError(
                f"Source '{name}' must be an object",
                ErrorCategory.CONFIG_ERROR,
                name,
            )
        try:
            definitions[name] = SourceDefinition.model_validate({**fields, "name": name})
        except ValidationError as e:
            raise ProcessingError(
                f"Invalid definition for source '{name}': {e.errors()[0]['msg']}",
                ErrorCategory.CONFIG_ERROR,
                name,
                {"errors": [err["msg"] for err in e.errors()]},
            ) from e
    return definitions


def load_source_definitions(path: str | Path) -> dict[str, SourceDefinition]:
    """Load and validate source definitions from a JSON file.

    Raises:
        ProcessingError: config-error if the file is missing or invalid
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ProcessingError(
            f"Sources file not found: {path}",
            ErrorCategory.CONFIG_ERROR,
            "config",
            {"path": str(path)},
        ) from e
    except ValueError as e:
        raise ProcessingError(
            f"Sources file is not valid JSON: {e}",
            ErrorCategory.CONFIG_ERROR,
            "config",
            {"path": str(path)},
        ) from e
    return parse_source_definitions(raw)


# Global settings instance, loaded once at import
settings = Settings()
