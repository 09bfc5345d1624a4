"""
House style and prompt construction for Yadam scene illustrations.
"""

from __future__ import annotations

from enum import Enum

MASTER_STYLE_PROMPT = (
    "A flat 2D vector illustration in the style of a Korean educational webtoon. "
    "Set in the Joseon Dynasty. Cute characters with simple features and expressive faces. "
    "Thick clean black outlines, cel-shaded coloring, flat colors, no 3D effects, "
    "no realistic textures."
)


class AspectRatio(str, Enum):
    """Aspect ratios the image provider accepts."""

    SQUARE = "1:1"
    WIDESCREEN = "16:9"
    PORTRAIT = "9:16"
    LANDSCAPE = "4:3"
    TALL = "3:4"

    def __str__(self) -> str:
        return self.value


DEFAULT_ASPECT_RATIO = AspectRatio.WIDESCREEN

ASPECT_RATIOS: dict[AspectRatio, str] = {
    AspectRatio.WIDESCREEN: "YouTube thumbnail / video (16:9)",
    AspectRatio.SQUARE: "Instagram / square (1:1)",
    AspectRatio.PORTRAIT: "Shorts / TikTok (9:16)",
    AspectRatio.LANDSCAPE: "Classic landscape (4:3)",
    AspectRatio.TALL: "Classic portrait (3:4)",
}


def build_render_prompt(scene_prompt: str, *, style: str = MASTER_STYLE_PROMPT) -> str:
    """
    Prefix the house style to a scene description.
    """
    if not scene_prompt or not scene_prompt.strip():
        raise ValueError("scene_prompt must be a non-empty string.")
    return f"{style} {scene_prompt.strip()}"


def build_repair_request(original_prompt: str) -> str:
    return f"""You are an expert prompt engineer. The following image generation prompt failed, likely due to safety filters or prohibited content policies.

Original prompt: "{original_prompt}"

Rewrite this prompt to be fully compliant with safety guidelines (no violence, no explicit content, no gore) while preserving the original scene's meaning and visual style as much as possible for a general audience educational webtoon.

Return ONLY the rewritten prompt text in English."""
