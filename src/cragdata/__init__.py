"""cragdata — incremental, dependency-aware processing of climbing data sources."""

__version__ = "0.1.0"
