"""Summits source: scraped HTML summit tables.

Each table row with at least four cells is a candidate. The second cell holds
a link whose ``href`` carries ``gipfelnr=<id>`` and whose text is the summit
name; the fourth cell holds the region name. Rows without such a link are
ignored.

Payload:
    {"regions": [{"name": ...}],
     "summits": [{"name": ..., "region": ..., "external_id": ...}],
     "metadata": {...}}
"""

import re
from html.parser import HTMLParser
from pathlib import Path
from typing import Any

from cragdata.core.diagnostics import Diagnostic
from cragdata.core.errors import ErrorCategory
from cragdata.sources.base import BaseSource, Dependencies

_SUMMIT_ID = re.compile(r"gipfelnr=(\d+)")


def fix_summit_name(name: str) -> str:
    """Turn ``"Turm, Kleiner"`` into ``"Kleiner Turm"``."""
    parts = [p.strip() for p in name.split(",")]
    if len(parts) == 2:
        return f"{parts[1]} {parts[0]}"
    return name


class _RowCollector(HTMLParser):
    """Collects table rows as lists of ``{"text", "links"}`` cells.

    ``</td>``, ``</tr>`` and ``</a>`` may be omitted: a new cell or row, the
    end of the table or the end of input closes whatever is still open.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.rows: list[list[dict[str, Any]]] = []
        self._row: list[dict[str, Any]] | None = None
        self._cell: dict[str, Any] | None = None
        self._link: dict[str, str] | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "tr":
            self._end_row()
            self._row = []
        elif tag in ("td", "th") and self._row is not None:
            self._end_cell()
            self._cell = {"text": "", "links": []}
        elif tag == "a" and self._cell is not None:
            self._end_link()
            self._link = {"href": dict(attrs).get("href") or "", "text": ""}

    def handle_endtag(self, tag: str) -> None:
        if tag == "a":
            self._end_link()
        elif tag in ("td", "th"):
            self._end_cell()
        elif tag in ("tr", "table", "tbody", "thead", "tfoot"):
            self._end_row()

    def handle_data(self, data: str) -> None:
        if self._cell is not None:
            self._cell["text"] += data
        if self._link is not None:
            self._link["text"] += data

    def close(self) -> None:
        super().close()
        self._end_row()

    def _end_link(self) -> None:
        if self._link is not None and self._cell is not None:
            self._cell["links"].append(self._link)
        self._link = None

    def _end_cell(self) -> None:
        self._end_link()
        if self._cell is not None and self._row is not None:
            self._row.append(self._cell)
        self._cell = None

    def _end_row(self) -> None:
        self._end_cell()
        if self._row is not None:
            self.rows.append(self._row)
        self._row = None


class SummitsHtmlSource(BaseSource):
    """Summit and region lists from an HTML table export."""

    async def fetch(self, dependencies: Dependencies) -> str:
        return await self.read_input_file(self.config.get("encoding", "utf-8"))

    async def parse(self, raw: str, dependencies: Dependencies) -> dict[str, Any]:
        self.log_progress("parse", "Parsing HTML content")

        collector = _RowCollector()
        collector.feed(raw)
        collector.close()

        rows = [row for row in (self._parse_row(cells) for cells in collector.rows) if row]

        regions: list[dict[str, str]] = []
        summits: list[dict[str, Any]] = []
        seen_regions: set[str] = set()
        seen_summits: set[tuple[str, str]] = set()
        for row in rows:
            if row["region"] and row["region"] not in seen_regions:
                seen_regions.add(row["region"])
                regions.append({"name": row["region"]})
            if (row["name"], row["region"]) not in seen_summits:
                seen_summits.add((row["name"], row["region"]))
                summits.append(row)

        self.log_progress("parse", f"Extracted {len(regions)} regions, {len(summits)} summits")
        return {
            "regions": regions,
            "summits": summits,
            "metadata": self.build_metadata(total_processed=len(rows)),
        }

    @staticmethod
    def _parse_row(cells: list[dict[str, Any]]) -> dict[str, Any] | None:
        if len(cells) < 4:
            return None
        link = next((a for a in cells[1]["links"] if "gipfelnr=" in a["href"]), None)
        if link is None:
            return None
        match = _SUMMIT_ID.search(link["href"])
        return {
            "name": fix_summit_name(link["text"].strip()),
            "region": cells[3]["text"].strip(),
            "external_id": match.group(1) if match else None,
        }

    async def validate(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.check_structure(payload, "regions", "summits")
        summits, diagnostics = self.validate_records(
            payload["summits"], self._validate_summit, label="summit"
        )

        for summit in summits:
            if not summit["external_id"]:
                diagnostics.append(
                    Diagnostic.warning(
                        ErrorCategory.VALIDATION_ERROR,
                        self.source_name,
                        f'Summit "{summit["name"]}" in region "{summit["region"]}" '
                        "is missing external_id",
                        type="missing_external_id",
                    )
                )

        return self.finalize(payload, diagnostics, len(summits), summits=summits)

    def _validate_summit(self, summit: Any, index: int) -> dict[str, Any]:
        if not isinstance(summit, dict):
            raise self.reject(f"Summit at index {index} must be an object")
        name = summit.get("name")
        region = summit.get("region")
        if not isinstance(name, str) or not name.strip():
            raise self.reject(f"Summit at index {index} cannot have an empty name")
        if not isinstance(region, str) or not region.strip():
            raise self.reject(f"Summit at index {index} cannot have an empty region")
        return {
            "name": name.strip(),
            "region": region.strip(),
            "external_id": summit.get("external_id") or None,
        }

    def get_source_files(self) -> list[Path]:
        return [self.input_file]
