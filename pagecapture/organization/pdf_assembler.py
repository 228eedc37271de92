"""
PDF Assembler - Combine captured page rasters into one document

Each captured page raster becomes exactly one PDF page whose media box equals
the raster's pixel size (1 pt = 1 px). The raster is drawn at the origin and
fills the page. Pages are rendered one at a time with PyMuPDF and collected
into the output document with pypdf. Missing or unreadable page files are
logged and left out; no blank pages are inserted.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Tuple
import json
import logging

import pymupdf
from PIL import Image
from pypdf import PageObject, PdfReader, PdfWriter

from pagecapture.capture.capture_loop import DEFAULT_PAGE_FILE_PATTERN, page_file_path
from pagecapture.capture.errors import AssemblyError


@dataclass
class PlacedPage:
    index: int
    width: int
    height: int
    source: str


@dataclass
class AssemblyReport:
    output_path: Path
    placed: List[PlacedPage] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.placed)


class DocumentAssembler:
    """
    Assemble per-page rasters into a single PDF.

    Features:
    - Per-page media box sized to the raster (no fixed paper size)
    - One isolated render per page (a bad raster only costs its own page)
    - Alpha channels flattened onto white
    - Document metadata and a JSON manifest sidecar
    """

    def __init__(
        self,
        pages_dir: Path,
        total_pages: int,
        output_path: Path,
        page_file_pattern: str = DEFAULT_PAGE_FILE_PATTERN,
        title: Optional[str] = None,
        write_manifest: bool = True
    ):
        """
        Initialize the assembler.

        Args:
            pages_dir: Directory holding page_<i> rasters
            total_pages: Expected page count N; indices 1..N are probed
            output_path: Output PDF path
            page_file_pattern: File name pattern with an {index} field
            title: Document title (defaults to the output file stem)
            write_manifest: Write <stem>_manifest.json next to the PDF
        """
        if total_pages < 1:
            raise ValueError(f"total_pages must be >= 1, got {total_pages}")
        self.pages_dir = Path(pages_dir)
        self.total_pages = total_pages
        self.output_path = Path(output_path)
        self.page_file_pattern = page_file_pattern
        self.title = title or self.output_path.stem
        self.write_manifest = write_manifest
        self.logger = logging.getLogger(__name__)

    def assemble(self) -> AssemblyReport:
        """
        Build the output document from whichever page files exist.

        Returns:
            AssemblyReport listing placed and skipped indices
        """
        report = AssemblyReport(output_path=self.output_path)
        writer = PdfWriter()

        for index in range(1, self.total_pages + 1):
            image_path = page_file_path(self.pages_dir, index, self.page_file_pattern)
            try:
                pdf_page, width, height = self._render_page(index, image_path)
                writer.add_page(pdf_page)
            except AssemblyError as e:
                self.logger.warning("Skipping page %d: %s", index, e)
                report.skipped.append(index)
                continue

            report.placed.append(PlacedPage(index=index, width=width, height=height, source=str(image_path)))
            self.logger.info("Added page %d to PDF (width: %dpx, height: %dpx)", index, width, height)

        if not report.placed:
            self.logger.warning("No pages found in %s; writing an empty document", self.pages_dir)

        writer.add_metadata({
            '/Title': self.title,
            '/Creator': 'pagecapture',
            '/Producer': 'pagecapture',
            '/CreationDate': datetime.now().strftime("D:%Y%m%d%H%M%S"),
        })

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.output_path, 'wb') as f:
            writer.write(f)
        self.logger.info("PDF saved as %s (%d page(s))", self.output_path, report.page_count)

        if self.write_manifest:
            self._write_manifest(report)

        return report

    def _render_page(self, index: int, image_path: Path) -> Tuple[PageObject, int, int]:
        """
        Turn one page raster into a single PDF page sized to the raster.

        Raises:
            AssemblyError: file missing, undecodable, or rejected by the renderer
        """
        if not image_path.exists():
            raise AssemblyError(f"Page {index} not found in {self.pages_dir}", page_index=index)

        try:
            data = image_path.read_bytes()
            with Image.open(BytesIO(data)) as img:
                img.load()
                width, height = img.size
                if img.mode in ('RGBA', 'LA') or (img.mode == 'P' and 'transparency' in img.info):
                    data = self._flatten(img)
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
            raise AssemblyError(f"Unreadable page file {image_path.name}: {e}", page_index=index) from e

        try:
            with pymupdf.open() as page_doc:
                page = page_doc.new_page(width=width, height=height)
                page.insert_image(page.rect, stream=data)
                page_pdf = page_doc.tobytes()
            pdf_page = PdfReader(BytesIO(page_pdf)).pages[0]
        except Exception as e:
            raise AssemblyError(f"Cannot embed {image_path.name}: {e}", page_index=index) from e

        return pdf_page, width, height

    @staticmethod
    def _flatten(img: Image.Image) -> bytes:
        """Composite an image with alpha onto white and return RGB PNG bytes."""
        if img.mode == 'P':
            img = img.convert('RGBA')
        background = Image.new('RGB', img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        buf = BytesIO()
        background.save(buf, format='PNG')
        return buf.getvalue()

    def _write_manifest(self, report: AssemblyReport) -> Optional[Path]:
        """
        Write {stem}_manifest.json alongside the PDF.

        Returns:
            Path of the manifest, or None when it could not be written
        """
        manifest_path = self.output_path.parent / f"{self.output_path.stem}_manifest.json"
        manifest = {
            'document': {
                'title': self.title,
                'pdf_file': self.output_path.name,
                'created_at': datetime.now().isoformat(),
                'expected_pages': self.total_pages,
                'page_count': report.page_count,
            },
            'pages': [asdict(page) for page in report.placed],
            'skipped': report.skipped,
        }

        try:
            with open(manifest_path, 'w', encoding='utf-8') as f:
                json.dump(manifest, f, indent=2, ensure_ascii=False)
        except OSError as e:
            self.logger.warning("Failed to write manifest %s: %s", manifest_path, e)
            return None
        return manifest_path
