"""Capture error taxonomy.

Only NavigationError changes the capture loop's control flow; the others are
logged and turn into "page missing" / "page skipped" outcomes.
"""
from __future__ import annotations

from typing import Optional


class PageCaptureError(Exception):
    """Base class for every error raised by the capture pipeline."""

    def __init__(self, message: str, page_index: Optional[int] = None):
        super().__init__(message)
        self.page_index = page_index


class CaptureError(PageCaptureError):
    """No usable candidate for a page, or fetching a candidate's bytes failed."""


class FormatError(CaptureError):
    """Raster bytes are neither a bitmap nor a valid/repairable PNG."""


class NavigationError(PageCaptureError):
    """Next-page affordance missing (or failed) while pages are still expected."""


class AssemblyError(PageCaptureError):
    """Page file missing or unreadable while building the output document."""


class ConfigurationError(PageCaptureError):
    """Invalid settings, work list or cookies file."""
