"""Processing pipeline — definitions -> dependency resolution -> sources -> results.

Components:
- Orchestrator: resolves dependencies, detects cycles, memoizes results and
  aggregates run statistics
- Transformer / Importer: post-processing stages run on every completed payload
"""

from cragdata.pipeline.orchestrator import Orchestrator
from cragdata.pipeline.stages import Importer, Transformer

__all__ = ["Importer", "Orchestrator", "Transformer"]
