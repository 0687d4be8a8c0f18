from __future__ import annotations

import base64
import io
import time

import pytest
from PIL import Image

from signature import (
    STROKE_BRIGHTNESS_THRESHOLD,
    SignatureDecodeError,
    decode_image_payload,
    process_signature_image,
    signature_to_overlay,
)

SAMPLE_PIXELS = [
    (0, 0, 0),
    (20, 20, 20),
    (150, 150, 150),  # exactly on the threshold: background
    (151, 150, 150),
    (255, 255, 255),
    (255, 0, 0),
    (255, 200, 0),
    (90, 200, 240),
]


def _png(pixels, mode="RGB") -> bytes:
    img = Image.new(mode, (len(pixels), 1))
    for x, px in enumerate(pixels):
        img.putpixel((x, 0), px)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def test_every_pixel_is_ink_or_transparent():
    out = Image.open(io.BytesIO(process_signature_image(_png(SAMPLE_PIXELS))))
    assert out.mode == "RGBA"
    for x, (r, g, b) in enumerate(SAMPLE_PIXELS):
        got = out.getpixel((x, 0))
        if (r + g + b) / 3 > STROKE_BRIGHTNESS_THRESHOLD:
            assert got == (0, 0, 0, 255)
        else:
            assert got[3] == 0


def test_source_alpha_is_ignored():
    pixels = [(255, 255, 255, 0), (10, 10, 10, 255)]
    out = Image.open(io.BytesIO(process_signature_image(_png(pixels, mode="RGBA"))))
    assert out.getpixel((0, 0)) == (0, 0, 0, 255)
    assert out.getpixel((1, 0))[3] == 0


def test_output_is_png(signature_png):
    assert process_signature_image(signature_png)[:8] == b"\x89PNG\r\n\x1a\n"


def test_overlay_keeps_size(signature_png):
    img = Image.open(io.BytesIO(signature_png))
    assert signature_to_overlay(img).size == img.size


def test_accepts_data_url_and_bare_base64(signature_png, signature_data_url):
    bare = base64.b64encode(signature_png).decode("ascii")
    assert process_signature_image(signature_data_url) == process_signature_image(bare)
    assert process_signature_image(signature_png) == process_signature_image(bare)


def test_decode_passes_bytes_through():
    assert decode_image_payload(b"abc") == b"abc"


@pytest.mark.parametrize("payload", ["", "   ", "data:image/png;base64", "not base64 at all!"])
def test_unreadable_payload_raises(payload):
    with pytest.raises(SignatureDecodeError):
        process_signature_image(payload)


def test_base64_that_is_not_an_image_raises():
    with pytest.raises(SignatureDecodeError):
        process_signature_image(base64.b64encode(b"hello, not a png").decode("ascii"))


def test_decode_error_is_a_value_error():
    assert issubclass(SignatureDecodeError, ValueError)


def test_threshold_matches_channel_mean_across_colours():
    # every combination of a few levels per channel, including sums just around 450
    levels = [0, 60, 120, 149, 150, 151, 152, 200, 255]
    pixels = [(r, g, b) for r in levels for g in levels for b in levels]
    img = Image.new("RGB", (len(levels) ** 2, len(levels)))
    img.putdata(pixels)

    out = signature_to_overlay(img)
    for (r, g, b), (orr, og, ob, oa) in zip(pixels, out.getdata()):
        if r + g + b > 450:
            assert (orr, og, ob, oa) == (0, 0, 0, 255)
        else:
            assert ((orr, og, ob), oa) == ((r, g, b), 0)


def test_large_pad_is_processed_quickly():
    img = Image.new("RGB", (1600, 600), (15, 15, 15))
    for x in range(0, 1600, 3):
        img.putpixel((x, 300), (250, 250, 250))
    buf = io.BytesIO()
    img.save(buf, format="PNG")

    start = time.monotonic()
    out = Image.open(io.BytesIO(process_signature_image(buf.getvalue())))
    assert time.monotonic() - start < 1.0
    assert out.getpixel((0, 300)) == (0, 0, 0, 255)
    assert out.getpixel((1, 300))[3] == 0
