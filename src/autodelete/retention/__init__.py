"""Retention cleanup engine: rules, batch erasure, dry runs, person search and audit history"""

from .eraser import BATCH_LIMIT, TIME_LIMIT, BatchEraser
from .estimator import DryRunEstimator
from .exceptions import InvalidScopeError, InvalidSearchError, RecordNotFoundError, RetentionError
from .file_deleter import FileDeleter
from .ports import CategoryInfo, FieldMatch, RecordStorePort, RetentionRecord
from .rules import compute_cutoff, resolve_days
from .run_logger import RunLogger
from .search import RecordSearch
from .schemas import (
    CleanupResult,
    EstimateResult,
    EstimateScope,
    FileDisposition,
    RecordDisposition,
    RetentionSettings,
)
from .service import RetentionService, load_retention_settings

__all__ = [
    "BATCH_LIMIT",
    "TIME_LIMIT",
    "BatchEraser",
    "DryRunEstimator",
    "FileDeleter",
    "RunLogger",
    "RetentionService",
    "load_retention_settings",
    "RecordStorePort",
    "CategoryInfo",
    "RetentionRecord",
    "FieldMatch",
    "RecordSearch",
    "resolve_days",
    "compute_cutoff",
    "RetentionSettings",
    "RecordDisposition",
    "FileDisposition",
    "EstimateScope",
    "CleanupResult",
    "EstimateResult",
    "RetentionError",
    "RecordNotFoundError",
    "InvalidScopeError",
    "InvalidSearchError",
]
