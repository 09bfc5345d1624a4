"""
Export rendered scene images to disk.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path

from yadam.ai_generation import RenderedImage

from .models import GenerationResult

_EXTENSION_OVERRIDES = {"image/jpeg": ".jpg"}


def download_filename(result: GenerationResult) -> str:
    image = RenderedImage.from_data_uri(_require_image(result))
    extension = (
        _EXTENSION_OVERRIDES.get(image.mime_type)
        or mimetypes.guess_extension(image.mime_type)
        or ".png"
    )
    return f"yadam_{result.id}{extension}"


def download(result: GenerationResult, destination: str | Path) -> Path:
    """
    Write the image of a successful result to ``destination``.

    ``destination`` may be a directory (the file is named ``yadam_<id>.<ext>``) or a
    file path. Failed results have no image and raise :class:`ValueError`.
    """
    image = RenderedImage.from_data_uri(_require_image(result))
    target = Path(destination).expanduser()
    if target.is_dir():
        target = target / download_filename(result)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(image.data)
    return target


def _require_image(result: GenerationResult) -> str:
    if not result.succeeded or not result.image_data:
        raise ValueError(f"Result {result.id} has no image to download.")
    return result.image_data
