"""Page capture loop.

Walks a viewer page by page, pulls the raster behind the first usable
rendering element on each page and persists it as page_<i>.png.

Core Concepts:
- CapturedPage: one persisted page raster (immutable once written)
- CaptureSessionResult: what happened to every attempted index
- PageCaptureLoop: one capture session; owns its DeduplicationTracker

Failure handling:
    Fetch, normalization and write failures only cost the current candidate.
    A page with no surviving candidate is recorded missing and the loop moves
    on. A missing next-page affordance ends the session early (ABORTED) and
    keeps everything captured so far. Nothing is retried.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional
import logging
import os

from .dedup import DeduplicationTracker
from .errors import CaptureError, NavigationError
from .instrumentation import time_step
from .normalizer import ImageNormalizer, NormalizedRaster
from .page_source import CandidateElement, PageSource

DEFAULT_PAGE_FILE_PATTERN = "page_{index}.png"


class CaptureState(Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    ADVANCING = "advancing"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class CapturedPage:
    index: int
    identifier: str
    raster_path: Path


@dataclass
class CaptureSessionResult:
    total_pages: int
    state: CaptureState = CaptureState.IDLE
    captured: List[CapturedPage] = field(default_factory=list)
    missing: List[int] = field(default_factory=list)
    attempted: List[int] = field(default_factory=list)
    error: Optional[NavigationError] = None

    @property
    def captured_indices(self) -> List[int]:
        return [page.index for page in self.captured]


def page_file_path(pages_dir: Path, index: int, pattern: str = DEFAULT_PAGE_FILE_PATTERN) -> Path:
    return Path(pages_dir) / pattern.format(index=index)


class PageCaptureLoop:
    """Capture pages 1..total_pages from a page source, strictly in order."""

    def __init__(
        self,
        source: PageSource,
        total_pages: int,
        pages_dir: Path,
        normalizer: Optional[ImageNormalizer] = None,
        page_file_pattern: str = DEFAULT_PAGE_FILE_PATTERN,
    ):
        if total_pages < 1:
            raise ValueError(f"total_pages must be >= 1, got {total_pages}")
        self.source = source
        self.total_pages = total_pages
        self.pages_dir = Path(pages_dir)
        self.normalizer = normalizer or ImageNormalizer()
        self.page_file_pattern = page_file_pattern
        self.tracker = DeduplicationTracker()
        self.state = CaptureState.IDLE
        self.logger = logging.getLogger(__name__)

    def page_path(self, index: int) -> Path:
        return page_file_path(self.pages_dir, index, self.page_file_pattern)

    async def run(self) -> CaptureSessionResult:
        """Run the session. Only cancellation propagates out of here."""
        result = CaptureSessionResult(total_pages=self.total_pages)
        self.pages_dir.mkdir(parents=True, exist_ok=True)

        for index in range(1, self.total_pages + 1):
            self.state = CaptureState.CAPTURING
            self.logger.info("Processing page %d/%d", index, self.total_pages)
            result.attempted.append(index)

            page = await self._capture_page(index)
            if page is not None:
                result.captured.append(page)
            else:
                result.missing.append(index)
                self.logger.warning("No valid image saved for page %d", index)

            if index < self.total_pages:
                self.state = CaptureState.ADVANCING
                try:
                    await self._advance(index)
                except NavigationError as e:
                    self.logger.error("%s; keeping %d captured page(s)", e, len(result.captured))
                    result.error = e
                    self.state = CaptureState.ABORTED
                    break
        else:
            self.state = CaptureState.DONE

        result.state = self.state
        self.logger.info(
            "Capture %s: captured=%d missing=%d attempted=%d/%d",
            self.state.value, len(result.captured), len(result.missing),
            len(result.attempted), self.total_pages,
        )
        return result

    @time_step("capture_page")
    async def _capture_page(self, index: int) -> Optional[CapturedPage]:
        try:
            candidates = await self.source.list_candidates()
        except Exception as e:
            self.logger.error("page=%d candidate lookup failed: %s", index, e)
            return None
        self.logger.info("Found %d elements on page %d", len(candidates), index)

        for candidate in candidates:
            identifier = candidate.identifier
            # Page 1 is always taken as new content.
            if index > 1 and self.tracker.contains(identifier):
                self.logger.debug("page=%d skipping previously seen %s element", index, candidate.kind.value)
                continue
            self.tracker.add(identifier)

            try:
                raster = await self._fetch_and_normalize(index, candidate)
                path = self._persist(index, raster)
            except CaptureError as e:
                self.logger.error("Failed to process page %d: %s", index, e)
                continue
            except OSError as e:
                self.logger.error("Failed to write page %d: %s", index, e)
                continue
            return CapturedPage(index=index, identifier=identifier, raster_path=path)
        return None

    async def _fetch_and_normalize(self, index: int, candidate: CandidateElement) -> NormalizedRaster:
        try:
            data = await self.source.fetch_bytes(candidate)
        except Exception as e:
            raise CaptureError(f"fetch failed for {candidate.kind.value} element: {e}", page_index=index) from e
        if not data:
            raise CaptureError(f"empty buffer from {candidate.kind.value} element", page_index=index)
        raster = self.normalizer.normalize(data)
        if raster.repaired:
            self.logger.info("page=%d re-encoded malformed PNG", index)
        return raster

    def _persist(self, index: int, raster: NormalizedRaster) -> Path:
        path = self.page_path(index)
        partial = path.with_name(path.name + ".part")
        try:
            partial.write_bytes(raster.data)
            os.replace(partial, path)
        except OSError:
            partial.unlink(missing_ok=True)
            raise
        self.logger.info(
            "Saved %s (kind=%s width=%d height=%d)", path, raster.kind.value, raster.width, raster.height
        )
        return path

    async def _advance(self, index: int) -> None:
        try:
            advanced = await self.source.next_page()
        except Exception as e:
            raise NavigationError(f"Next page action failed after page {index}: {e}", page_index=index) from e
        if not advanced:
            raise NavigationError(f"Next button not found after page {index}", page_index=index)
        try:
            await self.source.wait_until_settled()
        except Exception as e:
            raise NavigationError(f"Viewer did not settle after page {index}: {e}", page_index=index) from e
