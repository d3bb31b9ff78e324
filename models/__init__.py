"""Data models for the responsive images MCP server"""

from models.derivative import CropBox, DerivativeSet, DerivativeSpec
from models.options import ImageOptions
from models.result import ProcessResult, RenderData
from models.source_image import SourceImage

__all__ = [
    "CropBox",
    "DerivativeSet",
    "DerivativeSpec",
    "ImageOptions",
    "ProcessResult",
    "RenderData",
    "SourceImage",
]
