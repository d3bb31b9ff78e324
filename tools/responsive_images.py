"""Responsive image tools: cached srcset derivatives for site images"""

import logging
from typing import Any, Dict, List, Optional, Union

from mcp.server.fastmcp import FastMCP

from managers.responsive_image_manager import ResponsiveImageManager

logger = logging.getLogger("ResponsiveImages")


def register_responsive_image_tools(
    mcp: FastMCP,
    image_manager: ResponsiveImageManager
):
    """Register responsive image tools with the MCP server"""

    @mcp.tool()
    def get_responsive_image(
        image: Union[str, Dict[str, Any]],
        widths: Optional[Union[List[int], str]] = None,
        quality: Optional[int] = None,
        webp: Optional[bool] = None,
        lazy: Optional[bool] = None,
        sizes: Optional[str] = None,
        aspect_ratio: Optional[Union[float, str]] = None,
        alt: Optional[str] = None,
        css_class: Optional[str] = None,
    ) -> dict:
        """Get srcset data for a site image, generating missing thumbnails on demand.

        Thumbnails are cached under the cache directory next to a manifest per
        source image, so repeated calls are cheap. Replacing the source file
        invalidates its cache automatically. SVG images are returned as-is.

        Args:
            image: Path relative to the site root (e.g. "images/banner.jpg"), or an
                object such as {"imagefile": "images/banner.jpg", "alt_text": "Banner"}.
                An optional "#...?width=W&height=H" fragment may carry known dimensions.
            widths: Target widths (e.g. [480, 1280] or "480,1280")
            quality: Compression quality 1-100
            webp: Generate WebP thumbnails for srcset (fallback keeps the source format)
            lazy: Use loading="lazy" (False gives "eager")
            sizes: sizes attribute (e.g. "(max-width: 600px) 100vw, 50vw")
            aspect_ratio: Fixed output ratio, as a number or "16:9"; the source is center-cropped
            alt: Alt text used when the image object carries none
            css_class: Class hint passed through to the render data

        Returns:
            Dict with:
            - ok: True on success (also when image is empty: data is then null)
            - error / error_code: Failure message and machine-readable code
            - data: src, srcset, fallback, sizes, alt, width, height, loading,
              decoding, mime_type, css_class, fallback_srcset, fallback_mime_type, is_vector
            - missing: Thumbnail keys that had to be generated by this call
        """
        options = {
            "widths": widths,
            "quality": quality,
            "webp": webp,
            "lazy": lazy,
            "sizes": sizes,
            "aspect_ratio": aspect_ratio,
            "alt": alt,
            "css_class": css_class,
        }
        try:
            result = image_manager.process(image, options)
        except Exception as e:
            logger.exception("Failed to process responsive image")
            return {
                "ok": False,
                "error": f"Failed to process image: {str(e)}",
                "error_code": "PROCESSING_FAILED",
                "data": None,
            }

        response = result.to_dict()
        response["missing"] = list(result.missing)
        return response

    @mcp.tool()
    def get_responsive_image_info() -> dict:
        """Get site root, cache directory and image backend status.

        Call this first to verify paths before requesting images.
        """
        return image_manager.get_status()
