"""Explicit mapping from source type names to source factories.

The orchestrator resolves each SourceDefinition's ``type`` against a registry
once, at construction, instead of looking classes up by name at run time.
"""

import logging
from typing import Callable, Mapping

from cragdata.sources.base import BaseSource
from cragdata.sources.climbers import ClimbersSource
from cragdata.sources.http_json import HttpJsonSource
from cragdata.sources.locations import GeoJsonLocationsSource
from cragdata.sources.summits import SummitsHtmlSource

logger = logging.getLogger(__name__)

SourceFactory = Callable[..., BaseSource]


class SourceRegistry:
    """Type name -> factory called as ``factory(config, dependencies, name=, cache=)``."""

    def __init__(self, factories: Mapping[str, SourceFactory] | None = None) -> None:
        self._factories: dict[str, SourceFactory] = {}
        for type_name, factory in (factories or {}).items():
            self.register(type_name, factory)

    def register(self, type_name: str, factory: SourceFactory, replace: bool = False) -> None:
        """Register a factory.

        Raises:
            ValueError: If ``type_name`` is taken and ``replace`` is False
        """
        if type_name in self._factories and not replace:
            raise ValueError(f"Source type already registered: {type_name}")
        self._factories[type_name] = factory
        logger.debug("Registered source type: %s", type_name)

    def get(self, type_name: str) -> SourceFactory | None:
        return self._factories.get(type_name)

    def names(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._factories


def default_registry() -> SourceRegistry:
    """Registry with the built-in sources."""
    return SourceRegistry(
        {
            "climbers": ClimbersSource,
            "summits": SummitsHtmlSource,
            "locations": GeoJsonLocationsSource,
            "http_json": HttpJsonSource,
        }
    )
