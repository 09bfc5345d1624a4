"""
Integration with Replicate for rendering storyboard scenes in the house style.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import os
from collections.abc import Iterable as IterableABC
from dataclasses import dataclass
from typing import Any, Callable

import replicate
import requests

from yadam.common import ConfigurationError, RenderError
from yadam.common.config import DEFAULT_IMAGE_MODEL

from .prompting import DEFAULT_ASPECT_RATIO, AspectRatio, build_render_prompt

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_FORMAT = "png"


@dataclass(frozen=True)
class RenderedImage:
    """Raw image bytes returned by the renderer together with their MIME type."""

    data: bytes
    mime_type: str = "image/png"

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "RenderedImage":
        header, separator, payload = uri.partition(",")
        if not separator or not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("Expected a base64 data URI.")
        mime_type = header[len("data:") : -len(";base64")] or "image/png"
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Data URI payload is not valid base64.") from exc
        return cls(data=data, mime_type=mime_type)


def _build_flux_schnell_input(*, prompt: str, aspect_ratio: AspectRatio) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio.value,
        "num_outputs": 1,
        "output_format": DEFAULT_OUTPUT_FORMAT,
        # "output_quality": 90,
        # "go_fast": True,
    }


def _build_flux_pro_input(*, prompt: str, aspect_ratio: AspectRatio) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio.value,
        "output_format": DEFAULT_OUTPUT_FORMAT,
        "safety_tolerance": 2,
        "prompt_upsampling": False,
    }


def _build_imagen_input(*, prompt: str, aspect_ratio: AspectRatio) -> dict[str, Any]:
    return {
        "prompt": prompt,
        "aspect_ratio": aspect_ratio.value,
        "output_format": DEFAULT_OUTPUT_FORMAT,
        "safety_filter_level": "block_medium_and_above",
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-schnell": _build_flux_schnell_input,
    "black-forest-labs/flux-dev": _build_flux_schnell_input,
    "black-forest-labs/flux-1.1-pro": _build_flux_pro_input,
    "google/imagen-4": _build_imagen_input,
    "google/imagen-4-fast": _build_imagen_input,
}


def _resolve_input_builder(model_identifier: str) -> Callable[..., dict[str, Any]]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(set(_MODEL_INPUT_BUILDERS)))
        raise ConfigurationError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )

    return builder


class ReplicateImageRenderer:
    """
    Renders one scene prompt into an image with a Replicate text-to-image model.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Model string in the ``owner/model`` or ``owner/model:version`` format. Falls back to
        ``REPLICATE_MODEL`` and then to ``black-forest-labs/flux-schnell``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    session:
        Optional :class:`requests.Session` used to download images returned as URLs.

    Raises :class:`ConfigurationError` when the token is missing or the model has no
    known input payload.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        session: requests.Session | None = None,
        download_timeout: float = 60.0,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ConfigurationError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = (
            model_identifier
            or os.getenv("REPLICATE_MODEL")
            or DEFAULT_IMAGE_MODEL
        )
        self._input_builder = _resolve_input_builder(self._model_identifier)
        self._client = client or replicate.Client(api_token=self._api_token)
        self._session = session or requests.Session()
        self._download_timeout = download_timeout

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    def render(
        self,
        prompt: str,
        aspect_ratio: AspectRatio | str = DEFAULT_ASPECT_RATIO,
        **model_kwargs: Any,
    ) -> RenderedImage:
        """
        Render a scene prompt, prefixed with the house style, at the requested aspect ratio.

        Raises
        ------
        RenderError
            When the provider call fails or returns no image (commonly a safety rejection).
        """
        ratio = AspectRatio(aspect_ratio)
        try:
            styled_prompt = build_render_prompt(prompt)
        except ValueError as exc:
            raise RenderError(f"Cannot render scene: {exc}") from exc
        replicate_input = self._input_builder(prompt=styled_prompt, aspect_ratio=ratio)
        # Allow the caller to tweak model-specific knobs (e.g., seed, output_quality).
        replicate_input.update(model_kwargs)

        try:
            outputs = self._client.run(self._model_identifier, input=replicate_input)
        except Exception as exc:
            raise RenderError(f"Image generation failed: {exc}") from exc

        image = self._read_first_image(outputs, output_format=replicate_input.get("output_format"))
        if image is None:
            raise RenderError("The image model returned no image for this prompt.")
        return image

    def _read_first_image(self, raw: Any, *, output_format: str | None) -> RenderedImage | None:
        fallback_mime = _mime_for_format(output_format)

        if raw is None:
            return None

        if isinstance(raw, bytes):
            return RenderedImage(data=raw, mime_type=fallback_mime) if raw else None

        if isinstance(raw, str):
            return self._read_reference(raw, fallback_mime=fallback_mime)

        if hasattr(raw, "read"):
            # replicate.helpers.FileOutput streams the file; ``url`` hints the file type.
            try:
                data = raw.read()
            except Exception as exc:
                raise RenderError(f"Failed to read image output: {exc}") from exc
            url = getattr(raw, "url", None)
            mime_type = _guess_mime(url) if isinstance(url, str) else None
            return RenderedImage(data=data, mime_type=mime_type or fallback_mime) if data else None

        if isinstance(raw, IterableABC):
            for item in raw:
                image = self._read_first_image(item, output_format=output_format)
                if image is not None:
                    return image
            return None

        return self._read_reference(str(raw), fallback_mime=fallback_mime)

    def _read_reference(self, reference: str, *, fallback_mime: str) -> RenderedImage | None:
        reference = reference.strip()
        if not reference:
            return None

        if reference.startswith("data:"):
            try:
                return RenderedImage.from_data_uri(reference)
            except ValueError as exc:
                raise RenderError(f"Malformed image data URI: {exc}") from exc

        if reference.lower().startswith(("http://", "https://")):
            try:
                response = self._session.get(reference, timeout=self._download_timeout)
                response.raise_for_status()
            except requests.RequestException as exc:
                raise RenderError(f"Failed to download generated image: {exc}") from exc
            header_mime = response.headers.get("Content-Type", "").split(";")[0].strip()
            mime_type = header_mime if header_mime.startswith("image/") else None
            data = response.content
            if not data:
                return None
            return RenderedImage(data=data, mime_type=mime_type or _guess_mime(reference) or fallback_mime)

        logger.warning("Ignoring unrecognised image output: %.80s", reference)
        return None


def _guess_mime(url: str | None) -> str | None:
    if not url:
        return None
    mime_type, _ = mimetypes.guess_type(url.split("?", 1)[0])
    return mime_type if mime_type and mime_type.startswith("image/") else None


def _mime_for_format(output_format: str | None) -> str:
    if not output_format:
        return "image/png"
    normalized = output_format.lower().lstrip(".")
    if normalized in {"jpg", "jpeg"}:
        return "image/jpeg"
    return f"image/{normalized}"
