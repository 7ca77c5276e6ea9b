"""Renderer module - shape records to PPTX documents and PNG previews."""

from shapeshelf.renderer.pptx_writer import ShapeDocumentWriter
from shapeshelf.renderer.raster import LibreOfficeConverter, PreviewRasterizer
from shapeshelf.renderer.temp_files import TempFileRegistry

__all__ = [
    "LibreOfficeConverter",
    "PreviewRasterizer",
    "ShapeDocumentWriter",
    "TempFileRegistry",
]
