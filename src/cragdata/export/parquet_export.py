"""Parquet dataset export for completed processing results.

Every list-valued field of a completed payload becomes one Parquet file.
Nested objects are flattened into dotted columns (``gps.lat``, ``gps.lng``).

Storage structure:
    export/{source}/{field}.parquet

Example:
    export/summits/regions.parquet
    export/summits/summits.parquet
    export/locations/locations.parquet

Exports are downstream consumers: they read payloads and never modify them.
The exporter can run after a run (``export``) or as an orchestrator importer
(``import_payload``), writing each source as soon as it completes.
All I/O operations are async-compatible using asyncio.to_thread.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from cragdata.core.results import ProcessingResult, RunSummary

logger = logging.getLogger(__name__)


def records_to_frame(records: list[Any]) -> pd.DataFrame:
    """Build a DataFrame from payload records.

    Lists of objects are flattened with ``json_normalize``; lists of scalars
    become a single ``value`` column.
    """
    if all(isinstance(r, dict) for r in records):
        return pd.json_normalize(records)
    return pd.DataFrame({"value": records})


class ParquetExporter:
    """Writes completed payloads to Parquet datasets.

    Args:
        base_path: Root directory for exports. Defaults to 'export/'.
    """

    def __init__(self, base_path: str | Path = "export") -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_file_path(self, source: str, field: str) -> Path:
        return self.base_path / source / f"{field}.parquet"

    async def export_result(self, result: ProcessingResult) -> list[Path]:
        """Export one result. Non-completed results and empty lists are skipped.

        Returns:
            Paths of the written files
        """
        if not result.ok or not isinstance(result.payload, dict):
            logger.debug("Skipping export of %s (status: %s)", result.source_name, result.status.value)
            return []
        return await self.import_payload(result.source_name, result.payload)

    async def import_payload(self, source_name: str, payload: dict[str, Any]) -> list[Path]:
        """Write the list-valued fields of one payload.

        Returns:
            Paths of the written files
        """
        written = []
        for field, value in payload.items():
            if field == "metadata" or not isinstance(value, list) or not value:
                continue

            file_path = self._get_file_path(source_name, field)
            frame = records_to_frame(value)

            def _write(path: Path = file_path, df: pd.DataFrame = frame) -> None:
                path.parent.mkdir(parents=True, exist_ok=True)
                table = pa.Table.from_pandas(df, preserve_index=False)
                pq.write_table(table, path, compression="snappy", write_statistics=True)

            await asyncio.to_thread(_write)
            logger.info("Exported %d %s rows to %s", len(frame), field, file_path)
            written.append(file_path)

        return written

    async def export(self, summary: RunSummary) -> dict[str, list[Path]]:
        """Export every completed result of a run.

        Returns:
            Source name -> written paths
        """
        exported = {}
        for name, result in summary.completed.items():
            exported[name] = await self.export_result(result)
        return exported

    async def read(self, source: str, field: str) -> pd.DataFrame | None:
        """Read an exported dataset back, or None if it does not exist."""
        file_path = self._get_file_path(source, field)
        if not file_path.exists():
            return None
        return await asyncio.to_thread(lambda: pq.read_table(file_path).to_pandas())
