"""Viewer session: capture every document of a work list.

One Chromium context is shared by all documents (saved cookies are loaded
into it once). Documents are processed one after another; a document that
cannot be opened, captured or written is logged and skipped, the rest of the
batch continues.

Per document:
    1. open the parent page, wait for the viewer iframe
    2. wait the initial settle interval, read the page count (or fall back)
    3. capture pages into {temp_dir}/{slug}/
    4. assemble {output_pdf_prefix}_{slug}.pdf
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import json
import logging
import re

from playwright.async_api import Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from pagecapture.capture.capture_loop import CaptureSessionResult, PageCaptureLoop
from pagecapture.capture.config import CaptureConfig
from pagecapture.capture.errors import ConfigurationError, NavigationError, PageCaptureError
from pagecapture.organization.pdf_assembler import AssemblyReport, DocumentAssembler
from pagecapture.viewer.playwright_source import PlaywrightPageSource

BROWSER_ARGS = ['--no-sandbox', '--disable-setuid-sandbox', '--disable-infobars']

_COOKIE_KEYS = ('name', 'value', 'url', 'domain', 'path', 'expires', 'httpOnly', 'secure', 'sameSite')
_SAME_SITE = {'strict': 'Strict', 'lax': 'Lax', 'none': 'None'}


@dataclass
class DocumentResult:
    url: str
    slug: str
    pages_dir: Path
    output_path: Path
    capture: Optional[CaptureSessionResult] = None
    assembly: Optional[AssemblyReport] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.assembly is not None


def url_slug(url: str) -> str:
    """Last path segment with every non-alphanumeric character replaced by '_'."""
    last = url.rstrip('/').split('/')[-1] if url.rstrip('/') else url
    return re.sub(r'[^a-z0-9]', '_', last, flags=re.IGNORECASE)


def to_playwright_cookie(cookie: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a Puppeteer/Chrome cookie export entry to Playwright's format."""
    converted = {key: cookie[key] for key in _COOKIE_KEYS if key in cookie}
    # Session cookies are exported with expires -1.
    if converted.get('expires') is not None and converted['expires'] < 0:
        del converted['expires']
    same_site = converted.pop('sameSite', None)
    if isinstance(same_site, str) and same_site.lower() in _SAME_SITE:
        converted['sameSite'] = _SAME_SITE[same_site.lower()]
    if 'url' not in converted and 'path' not in converted:
        converted['path'] = '/'
    return converted


def load_cookies(path: str) -> List[Dict[str, Any]]:
    """Load a saved cookie jar.

    Raises:
        ConfigurationError: file unreadable, not a JSON list, or empty.
    """
    try:
        cookies = json.loads(Path(path).read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to load cookies from {path}: {e}") from e
    if not isinstance(cookies, list) or not cookies:
        raise ConfigurationError(f"No valid cookies found in {path}")
    return [to_playwright_cookie(c) for c in cookies if isinstance(c, dict)]


class ViewerSession:
    """Drive Chromium through the configured work list."""

    def __init__(self, config: CaptureConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def document_paths(self, url: str) -> Tuple[str, Path, Path]:
        slug = url_slug(url)
        pages_dir = Path(self.config.temp_dir) / slug
        output_path = Path(f"{self.config.output_pdf_prefix}_{slug}.pdf")
        return slug, pages_dir, output_path

    async def run(self) -> List[DocumentResult]:
        """Capture and assemble every URL of the work list.

        Raises:
            ConfigurationError: empty work list or unusable cookies file.
        """
        urls = self.config.parent_page_urls
        if not urls:
            raise ConfigurationError("No parent page URLs configured")
        cookies = load_cookies(self.config.cookies_file)

        results: List[DocumentResult] = []
        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=self.config.headless, args=BROWSER_ARGS)
            try:
                context = await browser.new_context(no_viewport=True)
                await context.add_cookies(cookies)
                page = await context.new_page()
                for i, url in enumerate(urls, 1):
                    self.logger.info("Starting scrape for URL %d/%d: %s", i, len(urls), url)
                    results.append(await self.capture_document(page, url))
            finally:
                await browser.close()

        done = sum(1 for r in results if r.succeeded)
        self.logger.info("Finished %d/%d document(s)", done, len(results))
        return results

    async def capture_document(self, page: Page, url: str) -> DocumentResult:
        slug, pages_dir, output_path = self.document_paths(url)
        result = DocumentResult(url=url, slug=slug, pages_dir=pages_dir, output_path=output_path)

        try:
            source = await self._open_viewer(page, url)
        except (NavigationError, PlaywrightError) as e:
            self.logger.error("Skipping %s: %s", url, e)
            result.error = str(e)
            return result

        try:
            total_pages = await self.resolve_total_pages(source)
            pages_dir.mkdir(parents=True, exist_ok=True)

            loop = PageCaptureLoop(
                source,
                total_pages,
                pages_dir,
                page_file_pattern=self.config.page_file_pattern,
            )
            result.capture = await loop.run()

            assembler = DocumentAssembler(
                pages_dir,
                total_pages,
                output_path,
                page_file_pattern=self.config.page_file_pattern,
                title=slug,
            )
            result.assembly = assembler.assemble()
        except (OSError, PageCaptureError, PlaywrightError) as e:
            self.logger.error("Failed %s: %s", url, e)
            result.error = str(e)
        return result

    async def _open_viewer(self, page: Page, url: str) -> PlaywrightPageSource:
        timeout = self.config.navigation_timeout_ms
        await page.goto(url, wait_until='networkidle', timeout=timeout)
        iframe = await page.wait_for_selector(self.config.frame_selector, timeout=timeout)
        if iframe is None:
            raise NavigationError(f"Iframe not found for {url}")
        frame = await iframe.content_frame()
        if frame is None:
            raise NavigationError(f"Iframe content inaccessible for {url}")
        await asyncio.sleep(self.config.initial_settle_seconds)
        return PlaywrightPageSource(frame, self.config)

    async def resolve_total_pages(self, source: Any) -> int:
        """Configured override, else the viewer's label, else the fallback count."""
        if self.config.total_pages is not None:
            return self.config.total_pages
        try:
            detected = await source.detect_total_pages()
        except PlaywrightError as e:
            self.logger.error("Failed to detect total pages: %s", e)
            detected = None
        if detected is None:
            self.logger.warning("Using fallback total pages: %d", self.config.fallback_total_pages)
            return self.config.fallback_total_pages
        self.logger.info("Detected total pages: %d", detected)
        return detected
