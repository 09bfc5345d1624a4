"""
Environment-driven settings for the Yadam storyboard tools.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

DEFAULT_ANALYSIS_MODEL = "gemini/gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "black-forest-labs/flux-schnell"
DEFAULT_DATA_DIR = Path("~/.yadam")
HISTORY_STORAGE_KEY = "yadam-history"


def resolve_llm_api_key() -> str | None:
    return (
        os.getenv("YADAM_LLM_API_KEY")
        or os.getenv("GEMINI_API_KEY")
        or os.getenv("LITELLM_API_KEY")
        or os.getenv("OPENAI_API_KEY")
    )


def resolve_analysis_model() -> str:
    return (
        os.getenv("YADAM_ANALYSIS_MODEL")
        or os.getenv("LITELLM_MODEL")
        or DEFAULT_ANALYSIS_MODEL
    )


def resolve_repair_model() -> str:
    return os.getenv("YADAM_REPAIR_MODEL") or resolve_analysis_model()


@dataclass(frozen=True)
class Settings:
    """
    Snapshot of the configuration the command-line tools run with.
    """

    llm_api_key: str | None
    analysis_model: str
    repair_model: str
    replicate_api_token: str | None
    replicate_model: str
    data_dir: Path

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = os.getenv("YADAM_DATA_DIR")
        return cls(
            llm_api_key=resolve_llm_api_key(),
            analysis_model=resolve_analysis_model(),
            repair_model=resolve_repair_model(),
            replicate_api_token=os.getenv("REPLICATE_API_TOKEN"),
            replicate_model=os.getenv("REPLICATE_MODEL") or DEFAULT_IMAGE_MODEL,
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR.expanduser(),
        )

    @property
    def history_path(self) -> Path:
        return self.data_dir / f"{HISTORY_STORAGE_KEY}.yaml"


def check_configuration(settings: Settings) -> None:
    """
    Fail fast when a provider credential is missing.

    Raises
    ------
    ConfigurationError
        Lists every missing variable so the user can fix them in one go.
    """
    missing: list[str] = []
    if not settings.llm_api_key:
        missing.append("GEMINI_API_KEY (or YADAM_LLM_API_KEY / LITELLM_API_KEY / OPENAI_API_KEY)")
    if not settings.replicate_api_token:
        missing.append("REPLICATE_API_TOKEN")
    if missing:
        raise ConfigurationError(
            "Missing required configuration: " + "; ".join(missing) + ". "
            "Set the variables in your environment or in a .env file."
        )


def mask_secret(value: str) -> str:
    """Mask a credential for display, keeping the first and last four characters."""
    if len(value) <= 8:
        return "***"
    return value[:4] + "*" * (len(value) - 8) + value[-4:]
