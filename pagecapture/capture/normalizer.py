"""Raster normalization.

The viewer hands out page rasters in two shapes: Windows bitmaps (from the
blob images) and PNGs (from canvases, sometimes malformed). Everything leaves
this module as PNG bytes so the page files and the assembler only ever deal
with one encoding.

Rules:
    - Bitmap: decoded to RGB, alpha forced to 255, pure yellow (the viewer's
      highlight artifact) rewritten to white, re-encoded as RGBA PNG.
    - PNG: passed through byte for byte when well formed; otherwise decoded
      (tolerating truncation) and re-encoded once.
    - Anything else raises FormatError.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Iterator, Tuple
import logging

import numpy as np
from PIL import Image, ImageFile

from .errors import FormatError

logger = logging.getLogger(__name__)

BMP_SIGNATURE = b"BM"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

SENTINEL_RGB: Tuple[int, int, int] = (255, 255, 0)
BACKGROUND_RGB: Tuple[int, int, int] = (255, 255, 255)

# Pillow raises SyntaxError from some plugin parsers on malformed headers and
# DecompressionBombError (not an OSError) for headers claiming huge dimensions.
_DECODE_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)


class RasterKind(Enum):
    """Closed set of encodings the viewer is known to emit."""
    BITMAP = "bitmap"
    STRUCTURED = "structured"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class NormalizedRaster:
    width: int
    height: int
    data: bytes  # PNG encoded
    kind: RasterKind
    repaired: bool = False


def classify_raster(data: bytes) -> RasterKind:
    """Classify raw bytes by their leading signature."""
    if data[:len(BMP_SIGNATURE)] == BMP_SIGNATURE:
        return RasterKind.BITMAP
    if data[:len(PNG_SIGNATURE)] == PNG_SIGNATURE:
        return RasterKind.STRUCTURED
    return RasterKind.UNRECOGNIZED


@contextmanager
def _tolerate_truncation() -> Iterator[None]:
    previous = ImageFile.LOAD_TRUNCATED_IMAGES
    ImageFile.LOAD_TRUNCATED_IMAGES = True
    try:
        yield
    finally:
        ImageFile.LOAD_TRUNCATED_IMAGES = previous


def _encode_png(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class ImageNormalizer:
    """Turn captured raster bytes into canonical PNG bytes."""

    def __init__(
        self,
        sentinel_rgb: Tuple[int, int, int] = SENTINEL_RGB,
        background_rgb: Tuple[int, int, int] = BACKGROUND_RGB,
    ):
        self.sentinel_rgb = tuple(sentinel_rgb)
        self.background_rgb = tuple(background_rgb)

    def normalize(self, data: bytes) -> NormalizedRaster:
        """Normalize one raster.

        Raises:
            FormatError: bytes are unrecognized or could not be decoded/repaired.
        """
        kind = classify_raster(data)
        if kind is RasterKind.BITMAP:
            return self._normalize_bitmap(data)
        if kind is RasterKind.STRUCTURED:
            return self._normalize_structured(data)
        raise FormatError(f"unrecognized raster signature {data[:8].hex() or '<empty>'}")

    def _normalize_bitmap(self, data: bytes) -> NormalizedRaster:
        try:
            with Image.open(BytesIO(data), formats=["BMP"]) as img:
                img.load()
                rgb = img.convert("RGB")
        except _DECODE_ERRORS as e:
            raise FormatError(f"undecodable bitmap: {e}") from e

        # The decoder already reorders BGR storage into RGB.
        pixels = np.asarray(rgb, dtype=np.uint8)
        height, width = pixels.shape[:2]
        if width and height:
            r, g, b = (int(c) for c in pixels[0, 0])
            logger.debug("bitmap sample pixel x=0 y=0 r=%d g=%d b=%d", r, g, b)

        rgba = np.empty((height, width, 4), dtype=np.uint8)
        rgba[..., :3] = pixels
        rgba[..., 3] = 255
        sentinel = np.all(pixels == np.array(self.sentinel_rgb, dtype=np.uint8), axis=-1)
        rgba[sentinel, :3] = self.background_rgb

        out = Image.fromarray(rgba)
        return NormalizedRaster(width=width, height=height, data=_encode_png(out), kind=RasterKind.BITMAP)

    def _normalize_structured(self, data: bytes) -> NormalizedRaster:
        try:
            with Image.open(BytesIO(data), formats=["PNG"]) as img:
                img.verify()
            # verify() leaves the image unusable and skips pixel data, so decode again.
            with Image.open(BytesIO(data), formats=["PNG"]) as img:
                img.load()
                width, height = img.size
            return NormalizedRaster(width=width, height=height, data=data, kind=RasterKind.STRUCTURED)
        except _DECODE_ERRORS as e:
            logger.warning("invalid PNG (%s), attempting re-encode", e)
        return self._repair_structured(data)

    def _repair_structured(self, data: bytes) -> NormalizedRaster:
        try:
            with _tolerate_truncation():
                with Image.open(BytesIO(data), formats=["PNG"]) as img:
                    img.load()
                    width, height = img.size
                    encoded = _encode_png(img)
        except _DECODE_ERRORS as e:
            raise FormatError(f"unrepairable PNG: {e}") from e
        return NormalizedRaster(
            width=width, height=height, data=encoded, kind=RasterKind.STRUCTURED, repaired=True
        )
