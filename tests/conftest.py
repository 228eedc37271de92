"""Shared fixtures: an in-memory page source and raster builders."""
from __future__ import annotations

from io import BytesIO
from typing import List, Optional, Sequence, Tuple, Union
import struct

import pytest
from PIL import Image

from pagecapture.capture.page_source import CandidateElement, CandidateKind

Payload = Union[bytes, BaseException]


def make_png(width: int = 8, height: int = 6, color: Tuple[int, ...] = (10, 120, 200), mode: str = "RGB") -> bytes:
    buf = BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def make_bmp(pixels: Sequence[Sequence[Tuple[int, ...]]], mode: str = "RGB") -> bytes:
    """Build a bitmap from rows of pixel tuples."""
    height, width = len(pixels), len(pixels[0])
    img = Image.new(mode, (width, height))
    for y, row in enumerate(pixels):
        for x, value in enumerate(row):
            img.putpixel((x, y), value)
    buf = BytesIO()
    img.save(buf, format="BMP")
    return buf.getvalue()


def make_oversized_bmp_header(width: int = 20000, height: int = 10000) -> bytes:
    """A bitmap header claiming more pixels than Pillow will open; no pixel data."""
    file_header = struct.pack("<2sIHHI", b"BM", 54, 0, 0, 54)
    info_header = struct.pack("<IiiHHIIiiII", 40, width, height, 1, 24, 0, 0, 2835, 2835, 0, 0)
    return file_header + info_header + b"\x00" * 16


def canvas(markup: str, payload: Payload) -> CandidateElement:
    return CandidateElement(handle=payload, kind=CandidateKind.CANVAS, markup=markup)


def blob_image(locator: str, payload: Payload) -> CandidateElement:
    return CandidateElement(handle=payload, kind=CandidateKind.SOURCE, locator=locator)


class FakePageSource:
    """Viewer stand-in. The candidate handle is the payload fetch_bytes returns (or raises)."""

    def __init__(
        self,
        pages: List[List[CandidateElement]],
        stop_after: Optional[int] = None,
        next_error: Optional[BaseException] = None,
        total_pages: Optional[int] = None,
    ):
        self.pages = pages
        self.stop_after = stop_after
        self.next_error = next_error
        self.total_pages = total_pages
        self.current = 0
        self.listed: List[int] = []
        self.fetched: List[Tuple[int, str]] = []
        self.next_calls = 0
        self.settle_calls = 0

    async def list_candidates(self) -> List[CandidateElement]:
        self.listed.append(self.current + 1)
        if self.current >= len(self.pages):
            return []
        return list(self.pages[self.current])

    async def fetch_bytes(self, candidate: CandidateElement) -> bytes:
        self.fetched.append((self.current + 1, candidate.identifier))
        if isinstance(candidate.handle, BaseException):
            raise candidate.handle
        return candidate.handle

    async def next_page(self) -> bool:
        self.next_calls += 1
        if self.next_error is not None:
            raise self.next_error
        if self.stop_after is not None and self.current + 1 >= self.stop_after:
            return False
        self.current += 1
        return True

    async def wait_until_settled(self) -> None:
        self.settle_calls += 1

    async def detect_total_pages(self) -> Optional[int]:
        return self.total_pages


@pytest.fixture
def distinct_pages():
    """Three pages, one unique blob image each, different sizes."""
    return [
        [blob_image("blob:viewer/1", make_png(20, 30))],
        [blob_image("blob:viewer/2", make_png(40, 10))],
        [blob_image("blob:viewer/3", make_png(15, 15))],
    ]
