"""Fake collaborators injected into the orchestrator in tests."""

from __future__ import annotations

from typing import Callable

from yadam.ai_generation import AspectRatio, RenderedImage
from yadam.common import ChatResult, RenderError
from yadam.scene_analysis import SceneDescriptor


class FakeAnalyzer:
    def __init__(self, scenes: list[SceneDescriptor] | None = None, error: Exception | None = None):
        self.scenes = scenes or []
        self.error = error
        self.calls: list[str] = []

    def analyze(self, script_text: str) -> list[SceneDescriptor]:
        self.calls.append(script_text)
        if self.error is not None:
            raise self.error
        return list(self.scenes)


class FakeRenderer:
    """Fails for every prompt listed in ``failing``; ``hook`` runs inside each call."""

    def __init__(self, failing: set[str] | None = None):
        self.failing = set(failing or ())
        self.calls: list[tuple[str, AspectRatio]] = []
        self.hook: Callable[[str], None] | None = None

    def render(self, prompt: str, aspect_ratio: AspectRatio) -> RenderedImage:
        self.calls.append((prompt, AspectRatio(aspect_ratio)))
        if self.hook is not None:
            self.hook(prompt)
        if prompt in self.failing:
            raise RenderError(f"blocked: {prompt}")
        return RenderedImage(data=prompt.encode("utf-8"), mime_type="image/png")


class FakeRepairer:
    def __init__(self, rewrite: Callable[[str], str] | None = None):
        self.rewrite = rewrite or (lambda prompt: f"safe {prompt}")
        self.calls: list[str] = []

    def repair(self, prompt: str) -> str:
        self.calls.append(prompt)
        return self.rewrite(prompt)


def make_scenes(count: int) -> list[SceneDescriptor]:
    return [
        SceneDescriptor(index=number, summary=f"장면 {number}", image_prompt=f"prompt {number}")
        for number in range(1, count + 1)
    ]


def fake_completion(text: str = "", error: Exception | None = None):
    calls: list[dict] = []

    def completion_fn(**kwargs) -> ChatResult:
        calls.append(kwargs)
        if error is not None:
            raise error
        return ChatResult(text=text, raw=None)

    completion_fn.calls = calls  # type: ignore[attr-defined]
    return completion_fn


