"""Configuration tools for the responsive images MCP server"""

from typing import Any, List, Optional, Union

from mcp.server.fastmcp import FastMCP

from managers.defaults_manager import DefaultsManager


def register_configuration_tools(
    mcp: FastMCP,
    defaults_manager: DefaultsManager
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def get_thumbnail_defaults() -> dict:
        """Get current effective defaults for responsive image processing.

        Returns merged defaults from all sources (runtime, config, env, hardcoded).
        Shows what values will be used when parameters are not explicitly provided.
        """
        return defaults_manager.get_all_defaults()

    @mcp.tool()
    def set_thumbnail_defaults(
        widths: Optional[Union[List[int], str]] = None,
        quality: Optional[int] = None,
        webp: Optional[bool] = None,
        lazy: Optional[bool] = None,
        sizes: Optional[str] = None,
        persist: bool = False
    ) -> dict:
        """Set runtime defaults for responsive image processing.

        Args:
            widths: Default target widths (e.g. [640, 1280, 1920])
            quality: Default compression quality 1-100
            webp: Generate WebP thumbnails by default
            lazy: Lazy-load images by default
            sizes: Default sizes attribute
            persist: If True, write defaults to config file (~/.config/responsive-images-mcp/config.json).
                Otherwise, changes are ephemeral.

        Returns:
            Success status and any validation errors.
        """
        provided: dict[str, Any] = {
            key: value
            for key, value in {
                "widths": widths,
                "quality": quality,
                "webp": webp,
                "lazy": lazy,
                "sizes": sizes,
            }.items()
            if value is not None
        }
        if not provided:
            return {"success": False, "errors": ["No defaults provided"]}

        result = defaults_manager.set_defaults(provided)
        if "errors" in result:
            return {"success": False, "errors": result["errors"]}

        if persist:
            persist_result = defaults_manager.persist_defaults(provided)
            if "error" in persist_result:
                return {"success": False, "errors": [f"Failed to persist defaults: {persist_result['error']}"]}

        return {"success": True, "updated": result["updated"], "persisted": persist}
