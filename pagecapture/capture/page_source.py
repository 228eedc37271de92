"""Page source interface.

Anything that can show one document page at a time and hand out the
elements rendering it. The capture loop only talks to this protocol; the
Playwright implementation lives in pagecapture.viewer.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol, runtime_checkable


class CandidateKind(Enum):
    CANVAS = "canvas"  # drawable surface, identified by its markup
    SOURCE = "source"  # bitmap-bearing element, identified by its resource locator


@dataclass
class CandidateElement:
    """A renderable element that may hold the current page's content."""
    handle: Any
    kind: CandidateKind
    markup: Optional[str] = None
    locator: Optional[str] = None

    @property
    def identifier(self) -> str:
        """Dedup identity: markup signature for canvases, locator otherwise."""
        if self.kind is CandidateKind.CANVAS:
            return self.markup or ""
        return self.locator or ""


@runtime_checkable
class PageSource(Protocol):
    async def list_candidates(self) -> List[CandidateElement]:
        """Candidates visible on the current page, in document order."""
        ...

    async def fetch_bytes(self, candidate: CandidateElement) -> bytes:
        """Raw raster bytes behind a candidate. Raises on failure or timeout."""
        ...

    async def next_page(self) -> bool:
        """Invoke the next-page affordance; False when it does not exist."""
        ...

    async def wait_until_settled(self) -> None:
        """Block until the viewer has finished re-rendering after navigation."""
        ...
