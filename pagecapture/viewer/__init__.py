"""
Viewer Layer - Browser Side of the Capture

Purpose:
    Drive Chromium (Playwright) to the online viewer with a saved cookie
    jar and expose the viewer iframe as a page source for the capture loop.
"""

from .playwright_source import PlaywrightPageSource, decode_data_url, parse_page_count
from .session import DocumentResult, ViewerSession, load_cookies, to_playwright_cookie, url_slug

__all__ = [
    'PlaywrightPageSource',
    'decode_data_url',
    'parse_page_count',
    'DocumentResult',
    'ViewerSession',
    'load_cookies',
    'to_playwright_cookie',
    'url_slug',
]
