from __future__ import annotations

import base64

import pytest

from yadam.pipeline import GenerationResult, download, download_filename


def make_result(status: str = "success", mime: str = "image/png") -> GenerationResult:
    image_data = None
    if status == "success":
        image_data = f"data:{mime};base64," + base64.b64encode(b"pixels").decode("ascii")
    return GenerationResult(
        id="20261018_3",
        batch_id="20261018",
        original_input="story",
        refined_prompt="prompt",
        aspect_ratio="1:1",
        status=status,
        image_data=image_data,
    )


def test_download_into_directory(tmp_path):
    path = download(make_result(), tmp_path)

    assert path == tmp_path / "yadam_20261018_3.png"
    assert path.read_bytes() == b"pixels"


def test_download_to_explicit_file(tmp_path):
    target = tmp_path / "nested" / "cover.png"

    assert download(make_result(), target) == target
    assert target.read_bytes() == b"pixels"


def test_jpeg_filename_extension():
    assert download_filename(make_result(mime="image/jpeg")) == "yadam_20261018_3.jpg"


def test_failed_result_cannot_be_downloaded(tmp_path):
    with pytest.raises(ValueError):
        download(make_result(status="failed"), tmp_path)
