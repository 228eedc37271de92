"""
Organization Layer - Captured Pages to Document

Purpose:
    Probe the page files left by a capture session in index order and
    assemble them into one PDF, one page per raster, each page sized to
    its raster.
"""

from .pdf_assembler import DocumentAssembler, AssemblyReport, PlacedPage

__all__ = [
    'DocumentAssembler',
    'AssemblyReport',
    'PlacedPage',
]
