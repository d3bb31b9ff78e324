import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from managers.defaults_manager import DefaultsManager
from managers.responsive_image_manager import (
    DEFAULT_CACHE_DIR,
    ResponsiveImageConfig,
    ResponsiveImageManager,
)
from tools.configuration import register_configuration_tools
from tools.responsive_images import register_responsive_image_tools

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("MCP_Server")

SITE_ROOT = Path(os.getenv("RESPONSIVE_IMAGES_ROOT") or Path.cwd())
CACHE_DIR = os.getenv("RESPONSIVE_IMAGES_CACHE_DIR") or DEFAULT_CACHE_DIR

defaults_manager = DefaultsManager()
image_manager = ResponsiveImageManager(
    ResponsiveImageConfig(root=SITE_ROOT, cache_dir=CACHE_DIR),
    defaults_manager=defaults_manager,
)


class AppContext:
    def __init__(self, image_manager: ResponsiveImageManager):
        self.image_manager = image_manager


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle"""
    logger.info("Starting MCP server lifecycle...")
    try:
        if not image_manager.generator.backend.is_available():
            logger.warning("Pillow was built without JPEG/PNG support; raster images will fail")
        logger.info(f"Serving images from {image_manager.config.root}")
        yield AppContext(image_manager=image_manager)
    finally:
        logger.info("Shutting down MCP server")


mcp = FastMCP("Responsive_Images_MCP_Server", lifespan=app_lifespan)

register_responsive_image_tools(mcp, image_manager)
register_configuration_tools(mcp, defaults_manager)

if __name__ == "__main__":
    mcp.run(transport="streamable-http")
