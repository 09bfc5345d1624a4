"""
AI image generation package for Yadam storyboards.
"""

from .prompting import (
    ASPECT_RATIOS,
    DEFAULT_ASPECT_RATIO,
    MASTER_STYLE_PROMPT,
    AspectRatio,
    build_render_prompt,
)
from .repair import PromptRepairer
from .replicate_service import RenderedImage, ReplicateImageRenderer

__all__ = [
    "ASPECT_RATIOS",
    "AspectRatio",
    "DEFAULT_ASPECT_RATIO",
    "MASTER_STYLE_PROMPT",
    "PromptRepairer",
    "RenderedImage",
    "ReplicateImageRenderer",
    "build_render_prompt",
]
