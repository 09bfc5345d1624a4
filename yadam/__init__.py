"""
Yadam package: turn a narrative script into an illustrated storyboard.
"""

from .ai_generation import AspectRatio, PromptRepairer, ReplicateImageRenderer
from .pipeline import (
    BatchOrchestrator,
    BatchProgress,
    GenerationResult,
    Phase,
    ResultStore,
)
from .scene_analysis import SceneAnalyzer, SceneDescriptor

__all__ = [
    "AspectRatio",
    "BatchOrchestrator",
    "BatchProgress",
    "GenerationResult",
    "Phase",
    "PromptRepairer",
    "ReplicateImageRenderer",
    "ResultStore",
    "SceneAnalyzer",
    "SceneDescriptor",
]
