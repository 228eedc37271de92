"""
Capture Layer - Page Rasters From a Script-Controlled Viewer

Purpose:
    Walk a paginated viewer one page at a time, skip elements re-rendered
    from earlier pages, normalize whatever raster encoding the viewer hands
    out, and persist one PNG per page index.

File Convention:
    {temp_dir}/{slug}/
        - page_1.png
        - page_2.png
        - ...
"""

from .capture_loop import (
    CaptureSessionResult,
    CaptureState,
    CapturedPage,
    PageCaptureLoop,
    page_file_path,
)
from .config import CaptureConfig, load_config
from .dedup import DeduplicationTracker
from .errors import (
    AssemblyError,
    CaptureError,
    ConfigurationError,
    FormatError,
    NavigationError,
    PageCaptureError,
)
from .normalizer import ImageNormalizer, NormalizedRaster, RasterKind, classify_raster
from .page_source import CandidateElement, CandidateKind, PageSource

__all__ = [
    'CaptureSessionResult',
    'CaptureState',
    'CapturedPage',
    'PageCaptureLoop',
    'page_file_path',
    'CaptureConfig',
    'load_config',
    'DeduplicationTracker',
    'AssemblyError',
    'CaptureError',
    'ConfigurationError',
    'FormatError',
    'NavigationError',
    'PageCaptureError',
    'ImageNormalizer',
    'NormalizedRaster',
    'RasterKind',
    'classify_raster',
    'CandidateElement',
    'CandidateKind',
    'PageSource',
]
