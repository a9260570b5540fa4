"""Byte encoding of rendered images and the filename suffixes that name them."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Final

from PIL import Image

from .models import DEFAULT_JPEG_QUALITY, JpegFormat, OutputFormat, PngFormat
from .transform import RenderError

_JPEG_SUFFIXES: Final[tuple[str, ...]] = (".jpg", ".jpeg")


class EncodeError(RenderError):
    """Raised when an image cannot be serialized into the requested format."""


def suffix(output_format: OutputFormat) -> str:
    """Return the canonical filename suffix for an output format."""
    if isinstance(output_format, PngFormat):
        return ".png"
    if isinstance(output_format, JpegFormat):
        if output_format.quality == DEFAULT_JPEG_QUALITY:
            return ".jpeg"
        return f".q{output_format.quality}.jpeg"
    raise TypeError(f"Unsupported output format: {output_format!r}")


def encode(image: Image.Image, output_format: OutputFormat, sink: BinaryIO) -> None:
    """Serialize ``image`` into ``sink`` using ``output_format``."""
    if isinstance(output_format, JpegFormat):
        save_kwargs = {"format": "JPEG", "quality": output_format.quality, "optimize": True}
        if image.mode not in {"RGB", "L"}:
            image = image.convert("RGB")
    elif isinstance(output_format, PngFormat):
        save_kwargs = {"format": "PNG"}
    else:
        raise TypeError(f"Unsupported output format: {output_format!r}")

    try:
        image.save(sink, **save_kwargs)
    except (OSError, ValueError) as exc:
        raise EncodeError(f"Could not encode image as {save_kwargs['format']}.") from exc


def guess_media_type(file_path: Path) -> str:
    """Infer MIME type based on file suffix."""
    file_suffix = file_path.suffix.lower()
    if file_suffix in _JPEG_SUFFIXES:
        return "image/jpeg"
    if file_suffix == ".png":
        return "image/png"
    if file_suffix == ".txt":
        return "text/plain; charset=utf-8"
    return "application/octet-stream"
