# signature.py
"""
Captured signatures come from the tech's signature pad as light strokes on a
dark canvas. Printed on a white receipt they need to be the other way round,
so every pixel is thresholded into either opaque black ink or full
transparency and the result is saved as PNG to keep the alpha channel.
"""
from __future__ import annotations

import base64
import binascii
import io

from PIL import Image, ImageMath

# Average of R, G, B above this counts as ink.
STROKE_BRIGHTNESS_THRESHOLD = 150


class SignatureDecodeError(ValueError):
    pass


def decode_image_payload(value: str | bytes) -> bytes:
    """
    Signatures are stored as data URLs ("data:image/png;base64,...") but older
    rows hold bare base64 text. Raw bytes pass through untouched.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    s = (value or "").strip()
    if not s:
        raise SignatureDecodeError("empty signature payload")
    if s.startswith("data:"):
        _header, sep, s = s.partition(",")
        if not sep:
            raise SignatureDecodeError("data URL has no payload")
    try:
        return base64.b64decode(s, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureDecodeError(f"signature is not valid base64: {e}") from e


def signature_to_overlay(img: Image.Image) -> Image.Image:
    rgba = img.convert("RGBA")
    r, g, b, _ = rgba.split()
    # mean of R, G, B above the threshold; summed in 32-bit ints so nothing clips
    ink = ImageMath.lambda_eval(
        lambda args: (args["r"] + args["g"] + args["b"] > 3 * STROKE_BRIGHTNESS_THRESHOLD) * 255,
        r=r, g=g, b=b,
    ).convert("L")

    background = rgba.copy()
    background.putalpha(0)
    black = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return Image.composite(black, background, ink)


def process_signature_image(data: str | bytes) -> bytes:
    """
    Decode a captured signature and return PNG bytes of the black-on-transparent
    overlay. Raises SignatureDecodeError when the payload is not a readable image.
    """
    raw = decode_image_payload(data)
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            overlay = signature_to_overlay(img)
    except (OSError, Image.DecompressionBombError) as e:
        raise SignatureDecodeError(f"could not decode signature image: {e}") from e

    buf = io.BytesIO()
    overlay.save(buf, format="PNG")
    return buf.getvalue()
