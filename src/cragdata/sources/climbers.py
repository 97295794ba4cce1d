"""Climbers source — JSON array of full names.

Input:
    ["Bernd Arnold", "Dietrich Hasse", ...]

Payload:
    {"climbers": [{"first_name": "Bernd", "last_name": "Arnold"}, ...],
     "metadata": {...}}
"""

import json
from pathlib import Path
from typing import Any

from cragdata.core.diagnostics import Diagnostic
from cragdata.core.errors import ErrorCategory, ProcessingError
from cragdata.sources.base import BaseSource, Dependencies


class ClimbersSource(BaseSource):
    """Climber names from a JSON export."""

    async def fetch(self, dependencies: Dependencies) -> str:
        return await self.read_input_file()

    async def parse(self, raw: str, dependencies: Dependencies) -> dict[str, Any]:
        self.log_progress("parse", "Parsing climbers JSON data")

        try:
            names = json.loads(raw)
        except ValueError as e:
            raise ProcessingError(
                f"Failed to parse climbers JSON: {e}",
                ErrorCategory.PARSE_ERROR,
                self.source_name,
                {"original_error": str(e)},
            ) from e

        if not isinstance(names, list):
            raise ProcessingError(
                "Climbers data must be an array",
                ErrorCategory.PARSE_ERROR,
                self.source_name,
                {"data_type": type(names).__name__},
            )

        climbers = []
        for index, name in enumerate(names):
            if not isinstance(name, str):
                raise ProcessingError(
                    f"Climber name at index {index} must be a string",
                    ErrorCategory.PARSE_ERROR,
                    self.source_name,
                    {"index": index, "value": name},
                )
            first, _, last = name.strip().partition(" ")
            climbers.append({"first_name": first, "last_name": last.strip()})

        self.log_progress("parse", f"Parsed {len(climbers)} climbers")
        return {
            "climbers": climbers,
            "metadata": self.build_metadata(total_processed=len(climbers)),
        }

    async def validate(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.check_structure(payload, "climbers")
        climbers, diagnostics = self.validate_records(
            payload["climbers"], self._validate_climber, label="climber"
        )

        seen: dict[str, int] = {}
        for index, climber in enumerate(climbers):
            full_name = f"{climber['first_name']} {climber['last_name']}".strip()
            normalized = full_name.lower()
            if normalized in seen:
                diagnostics.append(
                    Diagnostic.warning(
                        ErrorCategory.VALIDATION_ERROR,
                        self.source_name,
                        f'Duplicate climber name found: "{full_name}"',
                        type="duplicate_name",
                        indices=[seen[normalized], index],
                    )
                )
            else:
                seen[normalized] = index

        return self.finalize(payload, diagnostics, len(climbers), climbers=climbers)

    def _validate_climber(self, climber: Any, index: int) -> dict[str, str]:
        if not isinstance(climber, dict):
            raise self.reject(f"Climber at index {index} must be an object")
        first = climber.get("first_name")
        last = climber.get("last_name")
        if not isinstance(first, str):
            raise self.reject(f"Climber at index {index} must have a first_name string")
        if not isinstance(last, str):
            raise self.reject(f"Climber at index {index} must have a last_name string")
        if not f"{first} {last}".strip():
            raise self.reject(f"Climber at index {index} cannot have an empty name")
        return {"first_name": first.strip(), "last_name": last.strip()}

    def get_source_files(self) -> list[Path]:
        return [self.input_file]
