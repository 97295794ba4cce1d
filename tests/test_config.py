"""Tests for configuration management."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from cragdata.config import (
    Settings,
    SourceDefinition,
    load_source_definitions,
    parse_source_definitions,
)
from cragdata.core.errors import ErrorCategory, ProcessingError


def test_settings_has_defaults(monkeypatch, tmp_path):
    """Settings should have sensible defaults for optional fields."""
    monkeypatch.chdir(tmp_path)
    for var in ("LOG_LEVEL", "CACHE_DIR", "CACHE_ENABLED", "SOURCES_FILE"):
        monkeypatch.delenv(var, raising=False)

    settings = Settings()

    assert settings.log_level == "INFO"
    assert settings.cache_dir == "cache"
    assert settings.cache_enabled is True
    assert settings.sources_file == "sources.json"
    assert settings.http_rate_limit == 5


def test_settings_loads_from_env(monkeypatch):
    monkeypatch.setenv("CACHE_DIR", "/tmp/cragcache")
    monkeypatch.setenv("CACHE_ENABLED", "false")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings()

    assert settings.cache_dir == "/tmp/cragcache"
    assert settings.cache_enabled is False
    assert settings.log_level == "DEBUG"


def test_settings_validates_log_level(monkeypatch):
    """Settings should validate log level."""
    monkeypatch.setenv("LOG_LEVEL", "INVALID")

    with pytest.raises(ValidationError) as exc_info:
        Settings()

    assert "log_level must be one of" in str(exc_info.value)


def test_settings_validates_rate_limit(monkeypatch):
    monkeypatch.setenv("HTTP_RATE_LIMIT", "0")

    with pytest.raises(ValidationError):
        Settings()


class TestSourceDefinition:
    """Test per-source definitions."""

    def test_type_defaults_to_name(self):
        definition = SourceDefinition(name="climbers", enabled=True)
        assert definition.source_type == "climbers"
        assert definition.dependencies == []
        assert definition.config == {}

    def test_type_alias(self):
        definition = SourceDefinition.model_validate(
            {"name": "osm", "enabled": True, "type": "locations"}
        )
        assert definition.source_type == "locations"

    def test_enabled_must_be_bool(self):
        with pytest.raises(ValidationError):
            SourceDefinition.model_validate({"name": "x", "enabled": "yes"})

    def test_enabled_required(self):
        with pytest.raises(ValidationError):
            SourceDefinition.model_validate({"name": "x"})

    def test_nested_dependencies_lifted(self):
        definition = SourceDefinition.model_validate(
            {"name": "locations", "enabled": True, "config": {"dependencies": ["summits"]}}
        )
        assert definition.dependencies == ["summits"]

    def test_empty_dependency_rejected(self):
        with pytest.raises(ValidationError):
            SourceDefinition.model_validate({"name": "x", "enabled": True, "dependencies": [""]})

    def test_frozen(self):
        definition = SourceDefinition(name="x", enabled=True)
        with pytest.raises(ValidationError):
            definition.enabled = False


class TestLoadSourceDefinitions:
    """Test loading the sources file."""

    def test_parse_wrapped_and_bare(self):
        raw = {"climbers": {"enabled": True, "config": {"input_file": "c.json"}}}
        assert parse_source_definitions({"sources": raw}) == parse_source_definitions(raw)

    def test_order_preserved(self):
        raw = {"sources": {"b": {"enabled": True}, "a": {"enabled": False}}}
        assert list(parse_source_definitions(raw)) == ["b", "a"]

    def test_invalid_definition_names_source(self):
        with pytest.raises(ProcessingError, match="Invalid definition for source 'bad'") as exc_info:
            parse_source_definitions({"bad": {"enabled": 1}})

        assert exc_info.value.category is ErrorCategory.CONFIG_ERROR
        assert exc_info.value.source_name == "bad"

    def test_non_object_definition(self):
        with pytest.raises(ProcessingError, match="must be an object"):
            parse_source_definitions({"bad": ["enabled"]})

    def test_load_file(self, tmp_path: Path):
        path = tmp_path / "sources.json"
        path.write_text(
            json.dumps({"sources": {"summits": {"enabled": True}, "locations": {
                "enabled": True, "dependencies": ["summits"]}}}),
            encoding="utf-8",
        )

        definitions = load_source_definitions(path)

        assert list(definitions) == ["summits", "locations"]
        assert definitions["locations"].dependencies == ["summits"]

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ProcessingError, match="Sources file not found") as exc_info:
            load_source_definitions(tmp_path / "missing.json")

        assert exc_info.value.category is ErrorCategory.CONFIG_ERROR

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "sources.json"
        path.write_text("{", encoding="utf-8")

        with pytest.raises(ProcessingError, match="not valid JSON"):
            load_source_definitions(path)
