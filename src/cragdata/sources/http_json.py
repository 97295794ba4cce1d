"""HTTP JSON source — records from a JSON document served over HTTP.

Config:
    url: Absolute URL of the document (required)
    params / headers: Optional request parameters and headers
    record_path: Dotted path to the record list inside the document
                 (default: the document itself must be a list)
    required_fields: Fields every record must carry with a non-empty value
    field: Payload field the records are stored under (default: "records")
    timeout / rate_limit / max_retries: Client overrides

The source has no file inputs, so its cache is only invalidated by
configuration or dependency changes. Set ``cache: {"enabled": false}`` to
always refetch.
"""

from typing import Any

from cragdata.clients import APIProviderError, JsonHttpClient
from cragdata.config import settings
from cragdata.core.errors import ErrorCategory, ProcessingError
from cragdata.sources.base import BaseSource, Dependencies


def get_by_dotted_path(document: Any, path: str) -> Any:
    """Traverse nested dicts with a path like ``"data.items"``; None if missing."""
    current = document
    if not path:
        return current
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return None
    return current


class HttpJsonSource(BaseSource):
    """Generic JSON records fetched with httpx."""

    @property
    def field(self) -> str:
        return self.config.get("field", "records")

    async def fetch(self, dependencies: Dependencies) -> Any:
        url = self.config.get("url")
        if not url:
            raise ProcessingError(
                "No url specified in configuration",
                ErrorCategory.CONFIG_ERROR,
                self.source_name,
            )

        self.log_progress("fetch", f"GET {url}")
        client = JsonHttpClient(
            headers=self.config.get("headers"),
            rate_limit=int(self.config.get("rate_limit", settings.http_rate_limit)),
            timeout=float(self.config.get("timeout", settings.http_timeout)),
            max_retries=int(self.config.get("max_retries", 3)),
        )
        try:
            async with client:
                return await client.get(url, params=self.config.get("params"))
        except APIProviderError as e:
            raise ProcessingError(
                f"Failed to fetch {url}: {e}",
                ErrorCategory.NETWORK_ERROR,
                self.source_name,
                {"url": url, "status_code": e.status_code},
            ) from e

    async def parse(self, raw: Any, dependencies: Dependencies) -> dict[str, Any]:
        record_path = self.config.get("record_path", "")
        records = get_by_dotted_path(raw, record_path)
        if not isinstance(records, list):
            raise ProcessingError(
                f"record_path '{record_path}' did not return a list",
                ErrorCategory.PARSE_ERROR,
                self.source_name,
                {"record_path": record_path, "data_type": type(records).__name__},
            )

        self.log_progress("parse", f"Extracted {len(records)} records")
        return {
            self.field: records,
            "metadata": self.build_metadata(
                url=self.config.get("url"), total_processed=len(records)
            ),
        }

    async def validate(self, payload: dict[str, Any]) -> dict[str, Any]:
        self.check_structure(payload, self.field)
        records, diagnostics = self.validate_records(payload[self.field], self._validate_record)
        return self.finalize(payload, diagnostics, len(records), **{self.field: records})

    def _validate_record(self, record: Any, index: int) -> dict[str, Any]:
        if not isinstance(record, dict):
            raise self.reject(f"Record at index {index} must be an object")
        for name in self.config.get("required_fields", []):
            value = record.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise self.reject(f"Record at index {index} is missing required field '{name}'")
        return record
