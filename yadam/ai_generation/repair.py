"""
Rewrite prompts that the image model refused into safer variants.
"""

from __future__ import annotations

import logging
from typing import Any

from yadam.common import (
    ChatResult,
    CompletionCallable,
    RepairError,
    call_chat_completion,
    strip_code_fences,
)
from yadam.common.config import resolve_llm_api_key, resolve_repair_model

from .prompting import build_repair_request

logger = logging.getLogger(__name__)


class PromptRepairer:
    """
    Suggests a policy-compliant rewrite for a prompt whose render failed.

    :meth:`repair` never raises: on any failure the original prompt is returned, so
    callers compare the result with their input to decide whether a suggestion exists.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
    ) -> None:
        self._api_key = api_key or resolve_llm_api_key()
        self._model = model or resolve_repair_model()
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion

    @property
    def model(self) -> str:
        return self._model

    def repair(self, prompt: str, **response_kwargs: Any) -> str:
        try:
            return self.request_rewrite(prompt, **response_kwargs)
        except RepairError:
            logger.exception("Prompt repair failed; keeping the original prompt.")
            return prompt

    def request_rewrite(
        self,
        prompt: str,
        *,
        temperature: float = 0.4,
        max_output_tokens: int = 800,
        **response_kwargs: Any,
    ) -> str:
        """
        Ask the model for a rewrite, raising :class:`RepairError` when none comes back.
        """
        try:
            result: ChatResult = self._completion_fn(
                model=self._model,
                messages=[{"role": "user", "content": build_repair_request(prompt)}],
                temperature=temperature,
                max_tokens=max_output_tokens,
                api_key=self._api_key,
                **response_kwargs,
            )
        except Exception as exc:
            raise RepairError(f"Prompt repair request failed: {exc}") from exc

        rewritten = strip_code_fences(result.text).strip().strip('"').strip()
        if not rewritten:
            raise RepairError("Prompt repair response did not contain any text content.")
        return rewritten
