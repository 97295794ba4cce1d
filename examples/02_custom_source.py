"""Example 2: Custom Source

This example shows how to add a source type of your own: a CSV file of routes
that only keeps routes on summits another source knows about. The new type is
registered next to the built-in ones and depends on ``summits``.
"""

import asyncio
import csv
import io
import tempfile
from pathlib import Path

from cragdata.config import parse_source_definitions
from cragdata.pipeline import Orchestrator
from cragdata.sources import BaseSource, default_registry


class RoutesCsvSource(BaseSource):
    """Routes from a ``summit,route,grade`` CSV file."""

    async def fetch(self, dependencies):
        return await self.read_input_file()

    async def parse(self, raw, dependencies):
        known = {
            summit["name"]
            for result in dependencies.values() if result.ok
            for summit in result.payload.get("summits", [])
        }
        rows = list(csv.DictReader(io.StringIO(raw)))
        routes = [row for row in rows if row["summit"] in known]
        return {"routes": routes, "metadata": self.build_metadata(total_rows=len(rows))}

    async def validate(self, payload):
        self.check_structure(payload, "routes")
        routes, diagnostics = self.validate_records(payload["routes"], self._check, label="route")
        return self.finalize(payload, diagnostics, len(routes), routes=routes)

    def _check(self, route, index):
        if not route.get("grade"):
            raise self.reject(f"Route {route.get('route')!r} has no grade")
        return route

    def get_source_files(self):
        return [self.input_file]


async def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        (root / "summits.html").write_text(
            '<table><tr><td>1</td><td><a href="?gipfelnr=1">Falkenstein</a></td>'
            "<td>40</td><td>Schrammsteine</td></tr></table>",
            encoding="utf-8",
        )
        (root / "routes.csv").write_text(
            "summit,route,grade\n"
            "Falkenstein,Schusterweg,III\n"
            "Falkenstein,Westkante,\n"
            "Unknown,Somewhere,VII\n",
            encoding="utf-8",
        )

        registry = default_registry()
        registry.register("routes_csv", RoutesCsvSource)

        definitions = parse_source_definitions({
            "summits": {"enabled": True, "config": {"input_file": str(root / "summits.html")}},
            "routes": {
                "enabled": True,
                "type": "routes_csv",
                "config": {"input_file": str(root / "routes.csv")},
                "dependencies": ["summits"],
            },
        })

        summary = await Orchestrator(definitions, registry=registry).process_all(["routes"])
        routes = summary.results["routes"]
        print(f"routes: {routes.status.value}, {routes.record_count} records")
        for route in routes.payload["routes"]:
            print(f"  {route['summit']}: {route['route']} ({route['grade']})")
        for diagnostic in routes.diagnostics:
            print(f"  [{diagnostic.kind.value}] {diagnostic.message}")


if __name__ == "__main__":
    asyncio.run(main())
