"""Data sources for cragdata.

Every source implements fetch -> parse -> validate on top of BaseSource:
- ClimbersSource: JSON array of climber names
- SummitsHtmlSource: summit/region tables scraped as HTML
- GeoJsonLocationsSource: OSM points matched to summits from dependencies
- HttpJsonSource: JSON records fetched over HTTP
"""

from cragdata.sources.base import BaseSource, Dependencies, short_hash
from cragdata.sources.climbers import ClimbersSource
from cragdata.sources.http_json import HttpJsonSource
from cragdata.sources.locations import GeoJsonLocationsSource
from cragdata.sources.registry import SourceFactory, SourceRegistry, default_registry
from cragdata.sources.summits import SummitsHtmlSource

__all__ = [
    "BaseSource",
    "Dependencies",
    "short_hash",
    "ClimbersSource",
    "HttpJsonSource",
    "GeoJsonLocationsSource",
    "SummitsHtmlSource",
    "SourceFactory",
    "SourceRegistry",
    "default_registry",
]
