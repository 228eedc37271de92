"""
Viewer Capture CLI

Command-line tool for capturing paginated documents from the online viewer
and assembling captured pages into PDFs.

Usage:
    # Capture every URL in the config file (cookies.json must exist)
    python capture_cli.py capture --config config/capture_settings.json

    # Capture a single URL with a known page count, headless
    python capture_cli.py capture --url https://example.com/books/viewer/my-book --total-pages 40 --headless

    # Re-assemble a PDF from pages captured earlier
    python capture_cli.py assemble --pages-dir temp_images/my_book --total-pages 40 --output my_book.pdf
"""

import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path

from pagecapture.capture.config import load_config
from pagecapture.capture.errors import ConfigurationError
from pagecapture.capture.instrumentation import configure_logging
from pagecapture.organization.pdf_assembler import DocumentAssembler


def cmd_capture(args):
    """Capture and assemble every configured document."""
    # Imported here so `assemble` works without a browser install.
    from pagecapture.viewer.session import ViewerSession

    config = load_config(args.config)
    overrides = {}
    if args.url:
        overrides['parent_page_urls'] = args.url
    if args.cookies:
        overrides['cookies_file'] = args.cookies
    if args.total_pages is not None:
        overrides['total_pages'] = args.total_pages
    if args.headless:
        overrides['headless'] = True
    if overrides:
        config = dataclasses.replace(config, **overrides)
        config.validate()
    configure_logging(args.log_level or config.log_level)

    results = asyncio.run(ViewerSession(config).run())

    print()
    print("=" * 60)
    print("CAPTURE SUMMARY")
    print("=" * 60)
    for result in results:
        if not result.succeeded:
            print(f"  ✗ {result.slug}: {result.error}")
            continue
        capture = result.capture
        missing = f", missing {capture.missing}" if capture.missing else ""
        print(f"  ✓ {result.output_path} ({result.assembly.page_count}/{capture.total_pages} pages, "
              f"{capture.state.value}{missing})")


def cmd_assemble(args):
    """Assemble an existing page directory into a PDF."""
    configure_logging(args.log_level)
    pages_dir = Path(args.pages_dir)
    if not pages_dir.is_dir():
        raise ConfigurationError(f"Pages directory not found: {pages_dir}")
    if args.total_pages < 1:
        raise ConfigurationError("--total-pages must be >= 1")

    report = DocumentAssembler(pages_dir, args.total_pages, Path(args.output)).assemble()
    print(f"✓ Created PDF: {report.output_path} ({report.page_count} page(s))")
    if report.skipped:
        print(f"  Skipped pages: {', '.join(str(i) for i in report.skipped)}")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='Capture paginated documents from the online viewer into PDFs'
    )
    parser.add_argument('--log-level', default=None, help='Logging level (default: INFO)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    capture_parser = subparsers.add_parser('capture', help='Capture documents from the viewer')
    capture_parser.add_argument('--config', help='JSON settings file (default: config/capture_settings.json)')
    capture_parser.add_argument('--url', action='append', help='Parent page URL (repeatable, replaces configured URLs)')
    capture_parser.add_argument('--cookies', help='Saved cookies JSON file')
    capture_parser.add_argument('--total-pages', type=int, help='Page count override (skips detection)')
    capture_parser.add_argument('--headless', action='store_true', help='Run Chromium headless')

    assemble_parser = subparsers.add_parser('assemble', help='Assemble captured pages into a PDF')
    assemble_parser.add_argument('--pages-dir', required=True, help='Directory holding page_<n>.png files')
    assemble_parser.add_argument('--total-pages', type=int, required=True, help='Expected page count')
    assemble_parser.add_argument('--output', required=True, help='Output PDF path')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    command_handlers = {
        'capture': cmd_capture,
        'assemble': cmd_assemble,
    }

    try:
        command_handlers[args.command](args)
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
