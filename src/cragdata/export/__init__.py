"""Dataset export for downstream storage."""

from cragdata.export.parquet_export import ParquetExporter, records_to_frame

__all__ = ["ParquetExporter", "records_to_frame"]
