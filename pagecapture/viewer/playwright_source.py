"""Playwright-backed page source.

Binds the capture loop to the viewer iframe of an already navigated,
already authenticated Chromium page.
"""
from __future__ import annotations

from typing import List, Optional
import asyncio
import base64
import logging
import re

from playwright.async_api import Frame

from pagecapture.capture.config import CaptureConfig
from pagecapture.capture.page_source import CandidateElement, CandidateKind

logger = logging.getLogger(__name__)

# Blob URLs are only resolvable inside the frame that created them.
_FETCH_BLOB_JS = """
async (blobUrl) => {
    const response = await fetch(blobUrl);
    if (!response.ok) throw new Error(`Fetch failed: ${response.status}`);
    const buffer = await (await response.blob()).arrayBuffer();
    return Array.from(new Uint8Array(buffer));
}
"""

_CANVAS_DATA_URL_JS = "(canvas) => canvas.toDataURL('image/png')"


def decode_data_url(data_url: str) -> bytes:
    """Decode a base64 data: URL as produced by canvas.toDataURL()."""
    header, sep, payload = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("not a base64 data URL")
    return base64.b64decode(payload)


class PlaywrightPageSource:
    """PageSource over a viewer frame."""

    def __init__(self, frame: Frame, config: Optional[CaptureConfig] = None):
        self.frame = frame
        self.config = config or CaptureConfig()

    async def list_candidates(self) -> List[CandidateElement]:
        candidates: List[CandidateElement] = []
        for handle in await self.frame.query_selector_all(self.config.candidate_selector):
            tag = await handle.evaluate("(el) => el.tagName")
            if tag == "CANVAS":
                markup = await handle.evaluate("(el) => el.outerHTML")
                candidates.append(CandidateElement(handle=handle, kind=CandidateKind.CANVAS, markup=markup))
            else:
                src = await handle.evaluate("(el) => el.src")
                candidates.append(CandidateElement(handle=handle, kind=CandidateKind.SOURCE, locator=src))
        return candidates

    async def fetch_bytes(self, candidate: CandidateElement) -> bytes:
        if candidate.kind is CandidateKind.CANVAS:
            data_url = await candidate.handle.evaluate(_CANVAS_DATA_URL_JS)
            return decode_data_url(data_url)
        byte_values = await self.frame.evaluate(_FETCH_BLOB_JS, candidate.locator)
        return bytes(byte_values)

    async def next_page(self) -> bool:
        button = await self.frame.query_selector(self.config.next_button_selector)
        if button is None:
            logger.debug("no element matches %s", self.config.next_button_selector)
            return False
        await button.click()
        return True

    async def wait_until_settled(self) -> None:
        await asyncio.sleep(self.config.settle_seconds)

    async def detect_total_pages(self) -> Optional[int]:
        """Read the viewer's total page label; None when absent or not a number."""
        text = await self.frame.evaluate(
            "(selector) => { const el = document.querySelector(selector); return el ? el.textContent : null; }",
            self.config.total_pages_selector,
        )
        return parse_page_count(text)


_LEADING_NUMBER = re.compile(r"\s*/?\s*(\d+)")


def parse_page_count(text: Optional[str]) -> Optional[int]:
    """Leading integer of a label such as "165" or "/ 165"; None otherwise."""
    if text is None:
        return None
    match = _LEADING_NUMBER.match(text)
    if not match:
        return None
    value = int(match.group(1))
    return value if value > 0 else None
