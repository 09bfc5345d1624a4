"""
Convert a free-form script into ordered, image-ready scene descriptors.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from yadam.common import (
    AnalysisError,
    ChatResult,
    CompletionCallable,
    call_chat_completion,
    parse_json_payload,
)
from yadam.common.config import resolve_analysis_model, resolve_llm_api_key

from .prompting import AnalysisPrompt, build_analysis_prompt

logger = logging.getLogger(__name__)

FALLBACK_SCENE_SUMMARY = "단일 장면"


@dataclass(frozen=True)
class SceneDescriptor:
    """
    One segment of the script: a short summary plus the prompt used to render it.
    """

    index: int
    summary: str
    image_prompt: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "summary": self.summary,
            "image_prompt": self.image_prompt,
        }


def fallback_scenes(script_text: str) -> list[SceneDescriptor]:
    """
    Build the single-scene substitute used when analysis yields nothing usable.
    """
    if not script_text or not script_text.strip():
        raise ValueError("Cannot build a fallback scene from an empty script.")
    return [SceneDescriptor(index=1, summary=FALLBACK_SCENE_SUMMARY, image_prompt=script_text)]


class SceneAnalyzer:
    """
    Segments a script into sequential scene descriptors with a LiteLLM-compatible model.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
    ) -> None:
        self._api_key = api_key or resolve_llm_api_key()
        self._model = model or resolve_analysis_model()
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion

    @property
    def model(self) -> str:
        """Return the model identifier in use."""
        return self._model

    def analyze(
        self,
        script_text: str,
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 4000,
        **response_kwargs: Any,
    ) -> list[SceneDescriptor]:
        """
        Split the script into scenes ordered by their index.

        Raises
        ------
        AnalysisError
            When the provider call fails or its output holds no usable scene.
        """
        if not script_text or not script_text.strip():
            raise AnalysisError("Script text must be a non-empty string.")

        prompt: AnalysisPrompt = build_analysis_prompt(script_text)

        try:
            result: ChatResult = self._completion_fn(
                model=self._model,
                messages=[
                    {"role": "system", "content": prompt.system},
                    {"role": "user", "content": prompt.user},
                ],
                temperature=temperature,
                max_tokens=max_output_tokens,
                api_key=self._api_key,
                **response_kwargs,
            )
        except Exception as exc:
            raise AnalysisError(f"Scene analysis request failed: {exc}") from exc

        if not result.text:
            raise AnalysisError("Scene analysis response did not contain any text content.")

        scenes_data = self._parse_scenes_json(result.text)
        scenes = self._convert_to_scenes(scenes_data)
        if not scenes:
            raise AnalysisError("Scene analysis response did not contain any usable scene.")

        logger.info("Script analyzed into %d scene(s) with %s.", len(scenes), self._model)
        return scenes

    def _parse_scenes_json(self, raw_text: str) -> Sequence[Any]:
        try:
            parsed = parse_json_payload(raw_text)
        except json.JSONDecodeError as exc:
            raise AnalysisError("Failed to parse scene analysis response as JSON.") from exc

        if isinstance(parsed, list):
            return parsed
        if isinstance(parsed, Mapping):
            nested = parsed.get("scenes")
            if isinstance(nested, list):
                return nested
            # Some models answer with a lone scene object instead of an array.
            return [parsed]
        raise AnalysisError(
            f"Scene analysis JSON must be an array or object, received {type(parsed).__name__}."
        )

    def _convert_to_scenes(self, scenes_data: Iterable[Any]) -> list[SceneDescriptor]:
        entries: list[tuple[int | None, str, str]] = []
        for item in scenes_data:
            if not isinstance(item, Mapping):
                logger.warning("Skipping non-object scene entry: %r", item)
                continue

            image_prompt = str(item.get("english_prompt") or "").strip()
            if not image_prompt:
                logger.warning("Skipping scene entry without 'english_prompt': %r", item)
                continue

            summary = str(item.get("korean_summary") or "").strip()
            try:
                number: int | None = int(item["scene_number"])
            except (KeyError, TypeError, ValueError):
                number = None
            entries.append((number, summary, image_prompt))

        numbers = [number for number, _, _ in entries]
        has_usable_numbers = (
            all(number is not None and number >= 1 for number in numbers)
            and len(set(numbers)) == len(numbers)
        )
        if has_usable_numbers:
            entries.sort(key=lambda entry: entry[0])
        else:
            logger.debug("Scene numbers missing or duplicated; renumbering in response order.")
            entries = [
                (position, summary, image_prompt)
                for position, (_, summary, image_prompt) in enumerate(entries, start=1)
            ]

        return [
            SceneDescriptor(index=int(number), summary=summary, image_prompt=image_prompt)
            for number, summary, image_prompt in entries
        ]
