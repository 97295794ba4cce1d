"""GeoJSON locations source — attaches GPS positions to summits.

Reads a GeoJSON FeatureCollection, keeps Point features whose ``other_tags``
mention climbing, and matches them by name against the ``summits`` of every
completed dependency. Only summits with a matching point are returned.

Config:
    input_file: Path to the GeoJSON file
    tag: Substring required in ``other_tags`` (default: "climbing")
"""

import json
import logging
from pathlib import Path
from typing import Any

from cragdata.core.errors import ErrorCategory, ProcessingError
from cragdata.core.results import ProcessingStatus
from cragdata.sources.base import BaseSource, Dependencies

logger = logging.getLogger(__name__)


class GeoJsonLocationsSource(BaseSource):
    """Summit GPS positions from an OSM GeoJSON export."""

    async def fetch(self, dependencies: Dependencies) -> str:
        return await self.read_input_file()

    def combine_dependencies(self, dependencies: Dependencies) -> list[dict[str, Any]]:
        """Collect summit records from completed dependencies."""
        summits: list[dict[str, Any]] = []
        for name, result in dependencies.items():
            if result.status is not ProcessingStatus.COMPLETED or result.payload is None:
                logger.debug("Skipping dependency %s (status: %s)", name, result.status.value)
                continue
            dep_summits = result.payload.get("summits")
            if isinstance(dep_summits, list):
                summits.extend(dep_summits)
                logger.debug("Collected %d summits from %s", len(dep_summits), name)
            else:
                logger.warning("Dependency %s does not contain valid summits data", name)
        return summits

    async def parse(self, raw: str, dependencies: Dependencies) -> dict[str, Any]:
        self.log_progress("parse", "Matching summits to climbing locations")

        try:
            geojson = json.loads(raw)
        except ValueError as e:
            raise ProcessingError(
                f"Failed to parse GeoJSON content: {e}",
                ErrorCategory.PARSE_ERROR,
                self.source_name,
                {"original_error": str(e)},
            ) from e

        features = geojson.get("features") if isinstance(geojson, dict) else None
        if not isinstance(features, list):
            raise ProcessingError(
                "Invalid GeoJSON: features array not found",
                ErrorCategory.PARSE_ERROR,
                self.source_name,
            )

        summits = self.combine_dependencies(dependencies)
        points = self.filter_climbing_points(features)
        locations = self.match_summits_to_points(summits, points)

        self.log_progress("parse", f"Matched {len(locations)} of {len(summits)} summits")
        return {
            "locations": locations,
            "metadata": self.build_metadata(
                total_features=len(features),
                climbing_points=len(points),
                total_summits=len(summits),
                matched_summits=len(locations),
                dependencies=list(dependencies),
            ),
        }

    def filter_climbing_points(self, features: list[Any]) -> list[dict[str, Any]]:
        tag = self.config.get("tag", "climbing")
        points = []
        for feature in features:
            if not isinstance(feature, dict):
                continue
            geometry = feature.get("geometry") or {}
            if geometry.get("type") != "Point":
                continue
            other_tags = (feature.get("properties") or {}).get("other_tags")
            if isinstance(other_tags, str) and tag in other_tags:
                points.append(feature)
        return points

    @staticmethod
    def match_summits_to_points(
        summits: list[dict[str, Any]], points: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Case-insensitive exact name match; first point per name wins."""
        positions: dict[str, dict[str, Any]] = {}
        for point in points:
            name = (point.get("properties") or {}).get("name")
            coords = point["geometry"].get("coordinates")
            if not isinstance(name, str) or not name.strip():
                continue
            # [lng, lat] with an optional altitude
            if not isinstance(coords, list) or len(coords) < 2:
                continue
            positions.setdefault(name.strip().lower(), {"lng": coords[0], "lat": coords[1]})

        matched = []
        for summit in summits:
            name = summit.get("name")
            if not isinstance(name, str) or not name:
                continue
            gps = positions.get(name.strip().lower())
            if gps is not None:
                matched.append({"name": name, "region": summit.get("region"), "gps": dict(gps)})
        return matched

    async def validate(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.check_structure(payload, "locations")
        locations, diagnostics = self.validate_records(
            payload["locations"], self._validate_location, label="location"
        )
        return self.finalize(payload, diagnostics, len(locations), locations=locations)

    def _validate_location(self, location: Any, index: int) -> dict[str, Any]:
        if not isinstance(location, dict):
            raise self.reject(f"Location at index {index} must be an object")
        name = location.get("name")
        if not isinstance(name, str) or not name.strip():
            raise self.reject(f"Location at index {index} cannot have an empty name")
        gps = location.get("gps") or {}
        lat, lng = gps.get("lat"), gps.get("lng")
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            raise self.reject(f"Location {name!r} has non-numeric coordinates")
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise self.reject(f"Location {name!r} has coordinates out of range")
        return {"name": name.strip(), "region": location.get("region"), "gps": {"lat": lat, "lng": lng}}

    def get_source_files(self) -> list[Path]:
        return [self.input_file]
