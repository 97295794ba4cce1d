"""Example 1: Basic Run

This example shows the most basic usage of cragdata:
processing three file-backed sources, one of which depends on another.

The input files are written to a temporary directory so the example is
self-contained. The orchestrator runs twice against the same cache so the
second run is served from it.
"""

import asyncio
import json
import tempfile
from pathlib import Path

from cragdata.cache import JsonStore
from cragdata.config import parse_source_definitions
from cragdata.core import CollectingSink
from cragdata.pipeline import Orchestrator

SUMMITS_HTML = """
<table>
  <tr><td>1</td><td><a href="gipfel.php?gipfelnr=101">Falkenstein</a></td><td>40</td><td>Schrammsteine</td></tr>
  <tr><td>2</td><td><a href="gipfel.php?gipfelnr=102">Turm, Kleiner</a></td><td>12</td><td>Schrammsteine</td></tr>
  <tr><td>3</td><td><a href="gipfel.php?gipfelnr=201">Lokomotive</a></td><td>55</td><td>Rathen</td></tr>
</table>
"""


def write_inputs(root: Path) -> dict:
    """Write sample inputs and return matching source definitions."""
    (root / "climbers.json").write_text(
        json.dumps(["Bernd Arnold", "Dietrich Hasse", "", "Bernd Arnold"]), encoding="utf-8"
    )
    (root / "summits.html").write_text(SUMMITS_HTML, encoding="utf-8")
    (root / "osm.geojson").write_text(
        json.dumps({
            "type": "FeatureCollection",
            "features": [
                {
                    "type": "Feature",
                    "properties": {"name": "Falkenstein", "other_tags": '"sport"=>"climbing"'},
                    "geometry": {"type": "Point", "coordinates": [14.1931, 50.9312]},
                },
                {
                    "type": "Feature",
                    "properties": {"name": "Lokomotive", "other_tags": '"sport"=>"climbing"'},
                    "geometry": {"type": "Point", "coordinates": [14.0756, 50.9626]},
                },
            ],
        }),
        encoding="utf-8",
    )

    return {
        "sources": {
            "climbers": {"enabled": True, "config": {"input_file": str(root / "climbers.json")}},
            "summits": {"enabled": True, "config": {"input_file": str(root / "summits.html")}},
            "locations": {
                "enabled": True,
                "config": {"input_file": str(root / "osm.geojson")},
                "dependencies": ["summits"],
            },
        }
    }


async def main() -> None:
    """Run basic example."""
    print("=" * 60)
    print("cragdata — Example 1: Basic Run")
    print("=" * 60)
    print()

    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        definitions = parse_source_definitions(write_inputs(root))
        cache = JsonStore(root / "cache")

        for run in (1, 2):
            sink = CollectingSink()
            orchestrator = Orchestrator(definitions, cache=cache, sink=sink)
            summary = await orchestrator.process_all()

            print(f"Run {run}:")
            for name, result in summary.results.items():
                print(f"  {name:<10} {result.status.value:<10} {result.record_count:>3} records")
            print(f"  {len(sink.errors)} errors, {len(sink.warnings)} warnings")
            print()

        print("Summit positions:")
        for loc in summary.results["locations"].payload["locations"]:
            print(f"  {loc['name']:<12} {loc['gps']['lat']:.4f}, {loc['gps']['lng']:.4f}")

        print()
        print("Diagnostics from the climbers source:")
        for diagnostic in summary.results["climbers"].diagnostics:
            print(f"  [{diagnostic.kind.value}] {diagnostic.message}")


if __name__ == "__main__":
    asyncio.run(main())
