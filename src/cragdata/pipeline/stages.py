"""Post-processing stages applied to every completed source payload.

Transformers run in order on the validated payload and return the payload
passed on to the next stage. Importers then receive the final payload and
push it to an external destination. The payload that dependents and callers
see is the transformed one.

Failures are fatal for the source: a transformer failure becomes a
``transform-error``, an importer failure an ``import-error``.
"""

import logging
from typing import Any, Protocol, Sequence, runtime_checkable

from cragdata.core.errors import ErrorCategory, ProcessingError, wrap_error

logger = logging.getLogger(__name__)


@runtime_checkable
class Transformer(Protocol):
    """Rewrites a source payload."""

    async def transform(self, source_name: str, payload: dict[str, Any]) -> dict[str, Any]: ...


@runtime_checkable
class Importer(Protocol):
    """Pushes a source payload to a destination."""

    async def import_payload(self, source_name: str, payload: dict[str, Any]) -> Any: ...


async def apply_transformers(
    source_name: str,
    payload: dict[str, Any],
    transformers: Sequence[Transformer],
) -> dict[str, Any]:
    """Run ``transformers`` in order.

    Raises:
        ProcessingError: ``transform-error`` if a transformer raises or
            returns something other than a dict
    """
    for transformer in transformers:
        stage = type(transformer).__name__
        try:
            transformed = await transformer.transform(source_name, payload)
        except ProcessingError:
            raise
        except Exception as e:
            raise wrap_error(
                e, ErrorCategory.TRANSFORM_ERROR, source_name, {"transformer": stage}
            ) from e

        if not isinstance(transformed, dict):
            raise ProcessingError(
                f"Transformer {stage} returned no payload",
                ErrorCategory.TRANSFORM_ERROR,
                source_name,
                {"transformer": stage, "data_type": type(transformed).__name__},
            )
        logger.debug("[%s] applied transformer %s", source_name, stage)
        payload = transformed
    return payload


async def run_importers(
    source_name: str,
    payload: dict[str, Any],
    importers: Sequence[Importer],
) -> None:
    """Hand the final payload to every importer.

    Raises:
        ProcessingError: ``import-error`` if an importer raises
    """
    for importer in importers:
        stage = type(importer).__name__
        try:
            await importer.import_payload(source_name, payload)
        except ProcessingError:
            raise
        except Exception as e:
            raise wrap_error(
                e, ErrorCategory.IMPORT_ERROR, source_name, {"importer": stage}
            ) from e
        logger.debug("[%s] ran importer %s", source_name, stage)
