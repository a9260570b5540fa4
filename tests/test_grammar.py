"""Unit tests for the variant segment grammar."""

import pytest

from imagestore.grammar import ParseError, canonical_name, parse_variant
from imagestore.models import Clip, Crop, Cut, JpegFormat, PngFormat, Scale, Variant


def test_parse_bare_dimensions_defaults_to_scale_jpeg():
    variant = parse_variant("100x50")

    assert variant.transformation == Scale(width=100, height=50)
    assert variant.output_format == JpegFormat(quality=80)
    assert canonical_name(variant) == "scale-100x50.jpeg"


@pytest.mark.parametrize(
    ("segment", "expected"),
    [
        ("scale-100x50.png", "scale-100x50.png"),
        ("100x50.jpg", "scale-100x50.jpeg"),
        ("clip-10x20.jpeg", "clip-10x20.jpeg"),
        ("crop-50x50", "crop-50x50-x50y50.jpeg"),
        ("crop-50x50-x0y0.q90.jpeg", "crop-50x50-x0y0.q90.jpeg"),
        ("cut-20x30-t5l7", "cut-20x30-t5l7-s20x30.jpeg"),
        ("cut-20x30-t5l7-s40x60.png", "cut-20x30-t5l7-s40x60.png"),
        ("scale-1x1.q80.jpeg", "scale-1x1.jpeg"),
        ("scale-1x1.q07.jpg", "scale-1x1.q7.jpeg"),
    ],
)
def test_canonical_names(segment, expected):
    assert canonical_name(parse_variant(segment)) == expected


def test_crop_center_defaults_to_middle():
    assert parse_variant("crop-50x40").transformation == Crop(width=50, height=40, center_x=50, center_y=50)


def test_cut_reads_top_then_left():
    cut = parse_variant("cut-20x30-t5l7").transformation

    assert cut == Cut(width=20, height=30, top=5, left=7, scale_width=20, scale_height=30)


def test_png_suffix_selects_png():
    variant = parse_variant("clip-10x10.png")

    assert variant.transformation == Clip(width=10, height=10)
    assert variant.output_format == PngFormat()


@pytest.mark.parametrize(
    ("segment", "quality"),
    [
        ("scale-1x1.q150.jpeg", 100),
        ("scale-1x1.q-5.jpeg", 0),
        ("scale-1x1.q0.jpeg", 0),
        ("scale-1x1.q100.jpg", 100),
    ],
)
def test_quality_is_clamped(segment, quality):
    variant = parse_variant(segment)

    assert variant.output_format == JpegFormat(quality=quality)
    assert canonical_name(variant) == f"scale-1x1.q{quality}.jpeg"


@pytest.mark.parametrize(
    "segment",
    [
        "",
        "banana",
        "banana.jpeg",
        "100x",
        "x50",
        "-1x5",
        "scale--1x5",
        "Scale-1x1",
        "clip-10",
        "crop-50x50-x10",
        "crop-50x50-x-1y0",
        "cut-10x10",
        "cut-10x10-t1",
        "cut-10x10-t1l2-s5",
        "100x50.gif",
        "100x50.q.jpeg",
        "100x50.png.jpeg",
        "100x50.q90.png",
        "100x50.jpeg.jpeg",
        "100x50\n",
        "100x50.jpeg\n",
        "１０x10",
        " 100x50",
        "scale-" + "1" * 5000 + "x1",
        "100x50.q" + "9" * 5000 + ".jpeg",
    ],
)
def test_parse_variant_invalid(segment):
    with pytest.raises(ParseError, match="unparseable format"):
        parse_variant(segment)


@pytest.mark.parametrize(
    "variant",
    [
        Variant(transformation=Scale(width=0, height=7), output_format=JpegFormat()),
        Variant(transformation=Clip(width=640, height=480), output_format=PngFormat()),
        Variant(transformation=Crop(width=3, height=4, center_x=0, center_y=100), output_format=JpegFormat(quality=1)),
        Variant(transformation=Crop(width=3, height=4, center_x=250, center_y=9), output_format=JpegFormat(quality=100)),
        Variant(
            transformation=Cut(width=10, height=11, top=12, left=13, scale_width=14, scale_height=15),
            output_format=JpegFormat(quality=0),
        ),
    ],
)
def test_canonical_name_reparses_to_same_variant(variant):
    name = canonical_name(variant)

    reparsed = parse_variant(name)

    assert reparsed == variant
    assert canonical_name(reparsed) == name
