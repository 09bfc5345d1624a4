"""
End-to-end orchestration for Yadam storyboard generation.
"""

from .export import download, download_filename
from .history import ResultStore
from .models import (
    BatchProgress,
    GenerationResult,
    Phase,
    ResultStatus,
    make_result_id,
    scene_index_from_id,
)
from .orchestrator import INTER_REQUEST_DELAY_SECONDS, BatchOrchestrator, ProgressCallback

__all__ = [
    "BatchOrchestrator",
    "BatchProgress",
    "GenerationResult",
    "INTER_REQUEST_DELAY_SECONDS",
    "Phase",
    "ProgressCallback",
    "ResultStatus",
    "ResultStore",
    "download",
    "download_filename",
    "make_result_id",
    "scene_index_from_id",
]
