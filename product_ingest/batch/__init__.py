"""
Batch lifecycle: staging, validation, chunked reconciliation and reporting.
"""

from .lifecycle import ALLOWED_TRANSITIONS, BatchTracker, can_transition
from .pipeline import IngestionService, load_rule_engine
from .processor import ChunkProcessor, ChunkResult, ProcessingOutcome, diff_attributes, is_active
from .reports import BatchReporter
from .staging import StagingService
from .validation import ValidationEngine

__all__ = [
    "IngestionService",
    "load_rule_engine",
    "BatchTracker",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "StagingService",
    "ValidationEngine",
    "ChunkProcessor",
    "ChunkResult",
    "ProcessingOutcome",
    "diff_attributes",
    "is_active",
    "BatchReporter",
]
