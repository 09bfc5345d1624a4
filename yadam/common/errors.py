"""
Error taxonomy shared by the Yadam storyboard collaborators and orchestrator.
"""

from __future__ import annotations


class YadamError(Exception):
    """Base class for every domain error raised by the package."""


class ConfigurationError(YadamError):
    """A required credential or setting is missing."""


class AnalysisError(YadamError):
    """The script could not be segmented into scenes."""


class RenderError(YadamError):
    """The image provider returned no image for a prompt."""


class RepairError(YadamError):
    """A prompt rewrite could not be produced."""
