"""
Data model shared by the batch orchestrator, the result history, and the front ends.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from yadam.ai_generation import AspectRatio


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class Phase(str, Enum):
    """Lifecycle of a generation batch."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    GENERATING = "generating"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in {Phase.SUCCESS, Phase.ERROR, Phase.CANCELLED}

    @property
    def is_running(self) -> bool:
        return self in {Phase.ANALYZING, Phase.GENERATING}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_result_id(batch_id: str, scene_index: int) -> str:
    return f"{batch_id}_{scene_index}"


def scene_index_from_id(result_id: str) -> int:
    """
    Recover the scene index encoded as the ``_<index>`` suffix of a result id.
    """
    _, _, suffix = result_id.rpartition("_")
    try:
        return int(suffix)
    except ValueError:
        return 0


@dataclass(frozen=True)
class BatchProgress:
    """
    Snapshot of the orchestrator's progress, published after every state change.
    """

    phase: Phase = Phase.IDLE
    current_index: int | None = None
    total_count: int | None = None
    message: str = ""


@dataclass
class GenerationResult:
    """
    Outcome of rendering one scene. Retries update the same record in place.
    """

    id: str
    batch_id: str
    original_input: str
    refined_prompt: str
    aspect_ratio: AspectRatio
    status: ResultStatus
    image_data: str | None = None
    suggested_prompt: str | None = None
    scene_summary: str | None = None
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.aspect_ratio = AspectRatio(self.aspect_ratio)
        self.status = ResultStatus(self.status)
        if self.status is ResultStatus.SUCCESS and not self.image_data:
            raise ValueError(f"Successful result {self.id} must carry image data.")
        if self.status is ResultStatus.FAILED and self.image_data:
            raise ValueError(f"Failed result {self.id} must not carry image data.")
        if not self.suggested_prompt or self.suggested_prompt == self.refined_prompt:
            self.suggested_prompt = None

    @property
    def scene_index(self) -> int:
        return scene_index_from_id(self.id)

    @property
    def succeeded(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    def mark_success(self, *, prompt: str, image_data: str, created_at: datetime | None = None) -> None:
        if not image_data:
            raise ValueError("image_data must be a non-empty data URI.")
        self.status = ResultStatus.SUCCESS
        self.image_data = image_data
        self.refined_prompt = prompt
        self.suggested_prompt = None
        self.created_at = created_at or utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "original_input": self.original_input,
            "refined_prompt": self.refined_prompt,
            "suggested_prompt": self.suggested_prompt,
            "scene_summary": self.scene_summary,
            "image_data": self.image_data,
            "aspect_ratio": self.aspect_ratio.value,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "GenerationResult":
        try:
            created_at = payload["created_at"]
            if not isinstance(created_at, datetime):
                created_at = datetime.fromisoformat(str(created_at))
            return cls(
                id=str(payload["id"]),
                batch_id=str(payload["batch_id"]),
                original_input=str(payload["original_input"]),
                refined_prompt=str(payload["refined_prompt"]),
                suggested_prompt=_optional_text(payload.get("suggested_prompt")),
                scene_summary=_optional_text(payload.get("scene_summary")),
                image_data=_optional_text(payload.get("image_data")),
                aspect_ratio=AspectRatio(str(payload["aspect_ratio"])),
                created_at=created_at,
                status=ResultStatus(str(payload["status"])),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid generation result entry: {payload!r:.200}") from exc


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None
