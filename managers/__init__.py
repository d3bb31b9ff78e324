"""Manager classes for the responsive images MCP server"""

from managers.defaults_manager import DefaultsManager
from managers.manifest_manager import ThumbnailManifest
from managers.responsive_image_manager import ResponsiveImageConfig, ResponsiveImageManager
from managers.source_resolver import SourceResolver
from managers.thumbnail_generator import ThumbnailGenerator
from managers.thumbnail_planner import ThumbnailPlanner

__all__ = [
    "DefaultsManager",
    "ResponsiveImageConfig",
    "ResponsiveImageManager",
    "SourceResolver",
    "ThumbnailGenerator",
    "ThumbnailManifest",
    "ThumbnailPlanner",
]
