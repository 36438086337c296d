"""
Ingestion Engine Package.

Pages account history from the node into the ledger,
exactly once per sequence, never past the last
irreversible block.
"""

from .config import DEFAULT_MEMO_PATTERN, IngestionConfig
from .classification import MemoValidator, classify
from .types import IngestResult, PageOutcome
from .engine import IngestionEngine


__all__ = [
    "DEFAULT_MEMO_PATTERN",
    "IngestionConfig",
    "MemoValidator",
    "classify",
    "IngestResult",
    "PageOutcome",
    "IngestionEngine",
]
