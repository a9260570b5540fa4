"""Pydantic models for variant recipes and API responses."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

DEFAULT_JPEG_QUALITY = 80


class _Recipe(BaseModel):
    model_config = ConfigDict(frozen=True)


class Scale(_Recipe):
    """Resample to exactly width x height, ignoring aspect ratio."""

    kind: Literal["scale"] = "scale"
    width: NonNegativeInt
    height: NonNegativeInt


class Clip(_Recipe):
    """Fit inside width x height while keeping the aspect ratio."""

    kind: Literal["clip"] = "clip"
    width: NonNegativeInt
    height: NonNegativeInt


class Crop(_Recipe):
    """Cover width x height, then cut a window around a percentage center."""

    kind: Literal["crop"] = "crop"
    width: NonNegativeInt
    height: NonNegativeInt
    center_x: NonNegativeInt = 50
    center_y: NonNegativeInt = 50


class Cut(_Recipe):
    """Copy a literal pixel window, optionally resampled afterwards."""

    kind: Literal["cut"] = "cut"
    width: NonNegativeInt
    height: NonNegativeInt
    top: NonNegativeInt
    left: NonNegativeInt
    scale_width: NonNegativeInt
    scale_height: NonNegativeInt


Transformation = Annotated[Union[Scale, Clip, Crop, Cut], Field(discriminator="kind")]


class JpegFormat(_Recipe):
    kind: Literal["jpeg"] = "jpeg"
    quality: int = Field(default=DEFAULT_JPEG_QUALITY, ge=0, le=100)


class PngFormat(_Recipe):
    kind: Literal["png"] = "png"


OutputFormat = Annotated[Union[JpegFormat, PngFormat], Field(discriminator="kind")]


class Variant(_Recipe):
    """A transformation paired with the encoding its output is stored in."""

    transformation: Transformation
    output_format: OutputFormat


class DeleteResponse(BaseModel):
    """Response body returned after removing a stored file."""

    status: Literal["deleted"] = "deleted"
    path: str = Field(description="URL path of the removed file.")
    cascade: bool = Field(
        description="True when the whole container directory was removed with its source image.",
    )
