"""
Common utilities shared across Yadam modules.
"""

from .config import Settings, check_configuration, mask_secret
from .errors import (
    AnalysisError,
    ConfigurationError,
    RenderError,
    RepairError,
    YadamError,
)
from .llm import (
    ChatResult,
    CompletionCallable,
    call_chat_completion,
    parse_json_payload,
    strip_code_fences,
)

__all__ = [
    "AnalysisError",
    "ChatResult",
    "CompletionCallable",
    "ConfigurationError",
    "RenderError",
    "RepairError",
    "Settings",
    "YadamError",
    "call_chat_completion",
    "check_configuration",
    "mask_secret",
    "parse_json_payload",
    "strip_code_fences",
]
