"""Parse and render the path segment that names a derived image variant.

A variant segment is a transformation optionally followed by a format
suffix::

    (scale-)?<W>x<H>
    clip-<W>x<H>
    crop-<W>x<H>(-x<CX>y<CY>)?
    cut-<W>x<H>-t<T>l<L>(-s<SW>x<SH>)?

    .png | .jpeg | .jpg | .q<N>.jpeg | .q<N>.jpg

Without a suffix the output is JPEG at the default quality. Every parsed
variant has exactly one canonical name, and ``parse_variant`` applied to a
canonical name returns an equal variant.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from re import Pattern

from .codec import suffix
from .models import (
    DEFAULT_JPEG_QUALITY,
    Clip,
    Crop,
    Cut,
    JpegFormat,
    OutputFormat,
    PngFormat,
    Scale,
    Transformation,
    Variant,
)


class ParseError(ValueError):
    """Raised when a path segment does not describe a variant."""


def _compile(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.ASCII)


@dataclass(frozen=True)
class VariantGrammar:
    """Compiled patterns for the variant segment language."""

    format_suffix: Pattern[str] = field(
        default_factory=lambda: _compile(r"\.(?:(?:q(?P<quality>-?[0-9]+)\.)?jpe?g|(?P<png>png))\Z")
    )
    scale: Pattern[str] = field(
        default_factory=lambda: _compile(r"(?:scale-)?(?P<w>[0-9]+)x(?P<h>[0-9]+)")
    )
    clip: Pattern[str] = field(default_factory=lambda: _compile(r"clip-(?P<w>[0-9]+)x(?P<h>[0-9]+)"))
    crop: Pattern[str] = field(
        default_factory=lambda: _compile(
            r"crop-(?P<w>[0-9]+)x(?P<h>[0-9]+)(?:-x(?P<cx>[0-9]+)y(?P<cy>[0-9]+))?"
        )
    )
    cut: Pattern[str] = field(
        default_factory=lambda: _compile(
            r"cut-(?P<w>[0-9]+)x(?P<h>[0-9]+)-t(?P<t>[0-9]+)l(?P<l>[0-9]+)"
            r"(?:-s(?P<sw>[0-9]+)x(?P<sh>[0-9]+))?"
        )
    )


DEFAULT_GRAMMAR = VariantGrammar()


def _number(raw: str) -> int:
    try:
        return int(raw)
    except ValueError as exc:
        # int() refuses decimal strings past the interpreter's digit limit
        raise ParseError("unparseable format") from exc


def _clamp_quality(raw: str) -> int:
    return max(0, min(100, _number(raw)))


def parse_output_format(segment: str, grammar: VariantGrammar = DEFAULT_GRAMMAR) -> tuple[str, OutputFormat]:
    """Split ``segment`` into its transformation text and output format."""
    match = grammar.format_suffix.search(segment)
    if match is None:
        return segment, JpegFormat(quality=DEFAULT_JPEG_QUALITY)

    head = segment[: match.start()]
    if match.group("png"):
        return head, PngFormat()
    quality = match.group("quality")
    if quality is None:
        return head, JpegFormat(quality=DEFAULT_JPEG_QUALITY)
    return head, JpegFormat(quality=_clamp_quality(quality))


def parse_transformation(text: str, grammar: VariantGrammar = DEFAULT_GRAMMAR) -> Transformation:
    """Parse the transformation part of a variant segment."""
    parts = grammar.scale.fullmatch(text)
    if parts:
        return Scale(width=_number(parts["w"]), height=_number(parts["h"]))

    parts = grammar.clip.fullmatch(text)
    if parts:
        return Clip(width=_number(parts["w"]), height=_number(parts["h"]))

    parts = grammar.crop.fullmatch(text)
    if parts:
        width, height = _number(parts["w"]), _number(parts["h"])
        if parts["cx"] is None:
            return Crop(width=width, height=height)
        return Crop(width=width, height=height, center_x=_number(parts["cx"]), center_y=_number(parts["cy"]))

    parts = grammar.cut.fullmatch(text)
    if parts:
        width, height = _number(parts["w"]), _number(parts["h"])
        scale_width, scale_height = width, height
        if parts["sw"] is not None:
            scale_width, scale_height = _number(parts["sw"]), _number(parts["sh"])
        return Cut(
            width=width,
            height=height,
            top=_number(parts["t"]),
            left=_number(parts["l"]),
            scale_width=scale_width,
            scale_height=scale_height,
        )

    raise ParseError("unparseable format")


def parse_variant(segment: str | None, grammar: VariantGrammar = DEFAULT_GRAMMAR) -> Variant:
    """Parse a full variant segment such as ``crop-50x50-x0y0.q90.jpeg``."""
    if not segment:
        raise ParseError("unparseable format")
    text, output_format = parse_output_format(segment, grammar)
    transformation = parse_transformation(text, grammar)
    return Variant(transformation=transformation, output_format=output_format)


def transformation_name(transformation: Transformation) -> str:
    """Return the canonical name of a transformation, without suffix."""
    if isinstance(transformation, Scale):
        return f"scale-{transformation.width}x{transformation.height}"
    if isinstance(transformation, Clip):
        return f"clip-{transformation.width}x{transformation.height}"
    if isinstance(transformation, Crop):
        return (
            f"crop-{transformation.width}x{transformation.height}"
            f"-x{transformation.center_x}y{transformation.center_y}"
        )
    if isinstance(transformation, Cut):
        return (
            f"cut-{transformation.width}x{transformation.height}"
            f"-t{transformation.top}l{transformation.left}"
            f"-s{transformation.scale_width}x{transformation.scale_height}"
        )
    raise TypeError(f"Unsupported transformation: {transformation!r}")


def canonical_name(variant: Variant) -> str:
    """Return the filename a variant is stored under."""
    return transformation_name(variant.transformation) + suffix(variant.output_format)
