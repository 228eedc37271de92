"""Tests for the viewer layer helpers and per-document flow (no browser launched)."""
import asyncio
import base64
import json

import pytest
from pypdf import PdfReader

from pagecapture.capture.capture_loop import CaptureState
from pagecapture.capture.config import CaptureConfig
from pagecapture.capture.errors import ConfigurationError, NavigationError
from pagecapture.viewer.playwright_source import decode_data_url, parse_page_count
from pagecapture.viewer.session import ViewerSession, load_cookies, to_playwright_cookie, url_slug

from conftest import FakePageSource, blob_image, make_png


class StubbedViewerSession(ViewerSession):
    """ViewerSession whose viewer is a FakePageSource instead of a browser frame."""

    def __init__(self, config, source=None, open_error=None, sources=None):
        super().__init__(config)
        self.source = source
        self.open_error = open_error
        self.sources = dict(sources or {})
        self.opened = []

    async def _open_viewer(self, page, url):
        self.opened.append(url)
        if self.open_error is not None:
            raise self.open_error
        return self.sources.get(url, self.source)

    async def capture_all(self, urls):
        return [await self.capture_document(None, url) for url in urls]


def single_page_source(locator):
    return FakePageSource([[blob_image(locator, make_png(8, 8))]], total_pages=1)


def make_config(tmp_path, **overrides):
    values = dict(temp_dir=str(tmp_path / "temp_images"), output_pdf_prefix=str(tmp_path / "scraped_pdf"))
    values.update(overrides)
    return CaptureConfig(**values)


def test_url_slug():
    assert url_slug("https://plus.example.com/books/viewer/vce-general-maths-34-topic-tests") == \
        "vce_general_maths_34_topic_tests"
    assert url_slug("https://example.com/books/viewer/Book.One/") == "Book_One"


def test_parse_page_count():
    assert parse_page_count("165") == 165
    assert parse_page_count(" / 42 ") == 42
    assert parse_page_count("12 pages") == 12
    assert parse_page_count("") is None
    assert parse_page_count("n/a") is None
    assert parse_page_count("0") is None
    assert parse_page_count(None) is None


def test_decode_data_url():
    png = make_png(3, 3)
    url = "data:image/png;base64," + base64.b64encode(png).decode("ascii")
    assert decode_data_url(url) == png
    with pytest.raises(ValueError):
        decode_data_url("data:,plain")


def test_puppeteer_cookie_converted():
    cookie = {
        "name": "session", "value": "abc", "domain": ".example.com", "path": "/",
        "expires": -1, "size": 10, "httpOnly": True, "secure": True, "session": True,
        "sameSite": "lax", "priority": "Medium", "sameParty": False, "sourceScheme": "Secure",
    }
    assert to_playwright_cookie(cookie) == {
        "name": "session", "value": "abc", "domain": ".example.com", "path": "/",
        "httpOnly": True, "secure": True, "sameSite": "Lax",
    }


def test_persistent_cookie_keeps_expiry():
    converted = to_playwright_cookie({"name": "a", "value": "b", "domain": "x.com", "expires": 1900000000.5})
    assert converted["expires"] == 1900000000.5
    assert converted["path"] == "/"
    assert "sameSite" not in converted


def test_load_cookies(tmp_path):
    path = tmp_path / "cookies.json"
    path.write_text(json.dumps([{"name": "a", "value": "b", "domain": "x.com", "path": "/"}]), encoding="utf-8")
    assert load_cookies(str(path)) == [{"name": "a", "value": "b", "domain": "x.com", "path": "/"}]


@pytest.mark.parametrize("content", [None, "not json", "[]", '{"name": "a"}'])
def test_load_cookies_rejects_bad_files(tmp_path, content):
    path = tmp_path / "cookies.json"
    if content is not None:
        path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_cookies(str(path))


def test_run_requires_urls(tmp_path):
    session = ViewerSession(make_config(tmp_path))
    with pytest.raises(ConfigurationError):
        asyncio.run(session.run())


def test_run_requires_cookies_before_launching_browser(tmp_path):
    config = make_config(tmp_path, parent_page_urls=["https://example.com/v/a"],
                         cookies_file=str(tmp_path / "missing.json"))
    with pytest.raises(ConfigurationError):
        asyncio.run(ViewerSession(config).run())


def test_total_pages_resolution(tmp_path):
    detected = FakePageSource([], total_pages=12)
    undetected = FakePageSource([], total_pages=None)

    assert asyncio.run(ViewerSession(make_config(tmp_path)).resolve_total_pages(detected)) == 12
    assert asyncio.run(ViewerSession(make_config(tmp_path)).resolve_total_pages(undetected)) == 165
    assert asyncio.run(ViewerSession(make_config(tmp_path, total_pages=3)).resolve_total_pages(detected)) == 3


def test_capture_document_captures_and_assembles(tmp_path):
    pages = [[blob_image(f"blob:viewer/{i}", make_png(10 * i, 5))] for i in (1, 2)]
    source = FakePageSource(pages, total_pages=2)
    session = StubbedViewerSession(make_config(tmp_path), source=source)

    result = asyncio.run(session.capture_document(None, "https://example.com/books/viewer/my-book"))

    assert result.succeeded
    assert result.slug == "my_book"
    assert result.pages_dir == tmp_path / "temp_images" / "my_book"
    assert (result.pages_dir / "page_2.png").exists()
    assert result.capture.state is CaptureState.DONE
    assert result.output_path.name == "scraped_pdf_my_book.pdf"
    assert len(PdfReader(str(result.output_path)).pages) == 2


def test_capture_document_assembles_partial_after_abort(tmp_path):
    pages = [[blob_image(f"blob:viewer/{i}", make_png())] for i in range(1, 5)]
    source = FakePageSource(pages, stop_after=2, total_pages=4)
    session = StubbedViewerSession(make_config(tmp_path), source=source)

    result = asyncio.run(session.capture_document(None, "https://example.com/books/viewer/partial"))

    assert result.capture.state is CaptureState.ABORTED
    assert [p.index for p in result.assembly.placed] == [1, 2]
    assert result.assembly.skipped == [3, 4]


def test_unopenable_document_is_skipped(tmp_path):
    session = StubbedViewerSession(make_config(tmp_path), open_error=NavigationError("Iframe not found"))

    result = asyncio.run(session.capture_document(None, "https://example.com/books/viewer/broken"))

    assert not result.succeeded
    assert result.error == "Iframe not found"
    assert result.capture is None
    assert not result.output_path.exists()


def test_unwritable_pages_dir_does_not_stop_the_batch(tmp_path):
    config = make_config(tmp_path)
    blocked = tmp_path / "temp_images" / "first"
    blocked.parent.mkdir(parents=True)
    blocked.write_text("a file where the pages directory should be", encoding="utf-8")
    urls = ["https://example.com/books/viewer/first", "https://example.com/books/viewer/second"]
    session = StubbedViewerSession(config, sources={
        urls[0]: single_page_source("blob:viewer/first"),
        urls[1]: single_page_source("blob:viewer/second"),
    })

    first, second = asyncio.run(session.capture_all(urls))

    assert not first.succeeded
    assert first.error
    assert not first.output_path.exists()
    assert second.succeeded
    assert len(PdfReader(str(second.output_path)).pages) == 1


def test_unwritable_output_is_reported_on_the_document(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    config = make_config(tmp_path, output_pdf_prefix=str(blocker / "scraped_pdf"))
    session = StubbedViewerSession(config, source=single_page_source("blob:viewer/1"))

    result = asyncio.run(session.capture_document(None, "https://example.com/books/viewer/doc"))

    assert not result.succeeded
    assert result.error
    assert result.capture.captured_indices == [1]
    assert (result.pages_dir / "page_1.png").exists()
