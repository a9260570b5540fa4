"""Pixel transformations applied to a decoded source image."""

from __future__ import annotations

from PIL import Image

from .models import Clip, Crop, Cut, Scale, Transformation

RESAMPLE_FILTER = Image.Resampling.LANCZOS


class RenderError(RuntimeError):
    """Base exception for failures while producing a derived image."""


class ResampleError(RenderError):
    """Raised when an image cannot be resampled into the requested rectangle."""


def _clamp(minimum: int, maximum: int, value: int) -> int:
    return max(minimum, min(maximum, value))


def _check_area(width: int, height: int) -> None:
    limit = Image.MAX_IMAGE_PIXELS
    if limit is not None and width * height > limit:
        raise ResampleError(f"Refusing to allocate a {width}x{height} image, over {limit} pixels.")


def _resample(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    width, height = size
    if width <= 0 or height <= 0:
        raise ResampleError(f"Cannot resample into an empty {width}x{height} rectangle.")
    _check_area(width, height)
    if image.width <= 0 or image.height <= 0:
        raise ResampleError("Cannot resample an empty source image.")
    try:
        return image.resize((width, height), RESAMPLE_FILTER)
    except (OSError, ValueError, MemoryError) as exc:
        raise ResampleError(f"Resampling to {width}x{height} failed.") from exc


def _scale(image: Image.Image, op: Scale) -> Image.Image:
    return _resample(image, (op.width, op.height))


def _clip(image: Image.Image, op: Clip) -> Image.Image:
    if image.width <= 0 or image.height <= 0:
        raise ResampleError("Cannot clip an empty source image.")
    fit_width = (op.height * image.width) // image.height
    fit_height = (op.width * image.height) // image.width
    if fit_width <= op.width:
        return _resample(image, (fit_width, op.height))
    return _resample(image, (op.width, fit_height))


def _crop(image: Image.Image, op: Crop) -> Image.Image:
    if op.width <= 0 or op.height <= 0:
        raise ResampleError(f"Cannot crop an empty {op.width}x{op.height} window.")
    if image.width <= 0 or image.height <= 0:
        raise ResampleError("Cannot crop an empty source image.")
    cover_width = (op.height * image.width) // image.height
    cover_height = (op.width * image.height) // image.width
    if cover_width > op.width:
        scaled_size = (cover_width, op.height)
    else:
        # flooring can leave the height one pixel short of the window
        scaled_size = (op.width, max(cover_height, op.height))
    scaled = _resample(image, scaled_size)

    center_x = (op.center_x * scaled.width) // 100
    center_y = (op.center_y * scaled.height) // 100
    left = _clamp(0, scaled.width - op.width, center_x - op.width // 2)
    top = _clamp(0, scaled.height - op.height, center_y - op.height // 2)
    return scaled.crop((left, top, left + op.width, top + op.height))


def _cut(image: Image.Image, op: Cut) -> Image.Image:
    if op.width <= 0 or op.height <= 0:
        raise ResampleError(f"Cannot cut an empty {op.width}x{op.height} window.")
    _check_area(op.width, op.height)
    # areas outside the source come back black
    try:
        window = image.crop((op.left, op.top, op.left + op.width, op.top + op.height))
    except (OSError, ValueError, OverflowError, MemoryError) as exc:
        raise ResampleError(f"Cutting a {op.width}x{op.height} window failed.") from exc
    if (op.scale_width, op.scale_height) == (op.width, op.height):
        return window
    return _resample(window, (op.scale_width, op.scale_height))


def apply(image: Image.Image, transformation: Transformation) -> Image.Image:
    """Return a new image produced by applying ``transformation`` to ``image``."""
    if isinstance(transformation, Scale):
        return _scale(image, transformation)
    if isinstance(transformation, Clip):
        return _clip(image, transformation)
    if isinstance(transformation, Crop):
        return _crop(image, transformation)
    if isinstance(transformation, Cut):
        return _cut(image, transformation)
    raise TypeError(f"Unsupported transformation: {transformation!r}")
