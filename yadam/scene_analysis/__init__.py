"""
Scene analysis: turning a yadam script into an ordered list of scenes.
"""

from .analyzer import FALLBACK_SCENE_SUMMARY, SceneAnalyzer, SceneDescriptor, fallback_scenes
from .prompting import AnalysisPrompt, build_analysis_prompt

__all__ = [
    "AnalysisPrompt",
    "FALLBACK_SCENE_SUMMARY",
    "SceneAnalyzer",
    "SceneDescriptor",
    "build_analysis_prompt",
    "fallback_scenes",
]
