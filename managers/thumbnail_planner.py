"""Derivative planning: which thumbnails a request needs and where they live"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from image_processor import LEGACY_EXTENSIONS, round_half_up, safe_path_segment
from managers.errors import NoValidSizes
from models.derivative import (
    ROLE_FALLBACK,
    ROLE_THUMBNAIL,
    CropBox,
    DerivativeSet,
    DerivativeSpec,
)
from models.source_image import SourceImage

logger = logging.getLogger("ResponsiveImages")

# Hard safety ceilings for generated derivatives
MAX_DIMENSION = 10_000
MAX_PIXELS = 40_000_000
# The default <img src> never gets wider than this
FALLBACK_MAX_WIDTH = 1280


def legacy_extension(mime_type: str) -> str:
    """Output extension for derivatives kept in the source's own format family."""
    return LEGACY_EXTENSIONS.get(mime_type, "jpg")


def derivative_filename(stem: str, identity_hash: str, quality: int, width: int, height: int, extension: str) -> str:
    return f"{safe_path_segment(stem) or 'image'}-{identity_hash}-q{quality}-{width}x{height}.{extension}"


class ThumbnailPlanner:
    """Builds the DerivativeSet requested for one source image."""

    def __init__(
        self,
        max_dimension: int = MAX_DIMENSION,
        max_pixels: int = MAX_PIXELS,
        fallback_max_width: int = FALLBACK_MAX_WIDTH,
    ):
        self.max_dimension = max_dimension
        self.max_pixels = max_pixels
        self.fallback_max_width = fallback_max_width

    def plan(
        self,
        source: SourceImage,
        widths: Iterable[int],
        aspect_ratio: float,
        quality: int,
        extension: str,
        fallback_extension: str,
        cache_dir: Path,
        public_cache_dir: str,
        crop_box: Optional[CropBox] = None,
    ) -> DerivativeSet:
        """Compute the deduplicated, ascending set of derivatives.

        Args:
            source: Validated source image
            widths: Requested target widths
            aspect_ratio: Effective width / height ratio of the output
            quality: Compression quality, 1-100
            extension: Output extension of thumbnail-role derivatives
            fallback_extension: Output extension of the fallback derivative
            cache_dir: Absolute directory derivative files are written to
            public_cache_dir: The same directory relative to the site root
            crop_box: Crop applied to the source before resizing, if any

        Returns:
            DerivativeSet with the thumbnails plus exactly one fallback

        Raises:
            NoValidSizes: If nothing is left after clamping and dropping
        """
        if crop_box is not None:
            max_w, max_h = crop_box.width, crop_box.height
        else:
            max_w, max_h = source.width, source.height

        if aspect_ratio <= 0:
            aspect_ratio = (max_w / max_h) if max_h > 0 else 1.0

        requested = sorted({int(w) for w in widths if int(w) > 0})
        specs: List[DerivativeSpec] = []
        full_size_emitted = False

        for width in requested:
            if width >= max_w:
                if full_size_emitted:
                    logger.debug(f"Skipping width {width}: full-size derivative already planned")
                    continue
                full_size_emitted = True
                width = max_w

            size = self._fit(width, aspect_ratio, max_w, max_h)
            if size is None:
                continue
            spec = self._build(source, size, quality, extension, ROLE_THUMBNAIL, cache_dir, public_cache_dir)
            if spec:
                specs.append(spec)

        largest = requested[-1] if requested else max_w
        fallback_width = min(largest, max_w, self.fallback_max_width)
        size = self._fit(fallback_width, aspect_ratio, max_w, max_h)
        if size is not None:
            spec = self._build(source, size, quality, fallback_extension, ROLE_FALLBACK, cache_dir, public_cache_dir)
            if spec:
                specs.append(spec)

        if not specs:
            raise NoValidSizes(
                f"No valid thumbnail sizes for {source.path} ({max_w}x{max_h}, widths={requested})"
            )

        return DerivativeSet(specs)

    def _fit(self, width: int, ratio: float, max_w: int, max_h: int) -> Optional[Tuple[int, int]]:
        """Height for width at ratio; a height over max_h re-derives the width from the cap."""
        width = min(width, max_w)
        height = round_half_up(width / ratio)
        if height > max_h:
            height = max_h
            width = min(max_w, round_half_up(height * ratio))
        if width <= 0 or height <= 0:
            return None
        return width, height

    def _build(
        self,
        source: SourceImage,
        size: Tuple[int, int],
        quality: int,
        extension: str,
        role: str,
        cache_dir: Path,
        public_cache_dir: str,
    ) -> Optional[DerivativeSpec]:
        width, height = size
        if width > self.max_dimension or height > self.max_dimension or width * height > self.max_pixels:
            logger.warning(
                f"Dropping {role} {width}x{height} for {source.path}: exceeds safety limits "
                f"({self.max_dimension}px per side, {self.max_pixels} pixels)"
            )
            return None

        filename = derivative_filename(source.filename, source.hash, quality, width, height, extension)
        public_path = f"{public_cache_dir.strip('/')}/{filename}" if public_cache_dir.strip("/") else filename
        return DerivativeSpec(
            width=width,
            height=height,
            file_path=cache_dir / filename,
            extension=extension,
            quality=quality,
            role=role,
            public_path=public_path,
        )
