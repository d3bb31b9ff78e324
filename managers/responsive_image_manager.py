"""Responsive image manager: turns an image reference into cached derivatives and render data"""

import html
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from image_processor import MIME_BY_EXTENSION, calculate_crop_box, safe_path_segment
from managers.defaults_manager import DefaultsManager
from managers.errors import (
    DimensionReadFailure,
    DirectoryCreateFailure,
    ResponsiveImageError,
    WriteFailure,
)
from managers.generation_lock import DEFAULT_LOCK_TTL, LOCKS_DIRNAME
from managers.manifest_manager import ThumbnailManifest, manifest_filename
from managers.source_resolver import SourceResolver, canonicalize_path, is_empty_reference
from managers.thumbnail_generator import ThumbnailGenerator
from managers.thumbnail_planner import ThumbnailPlanner, legacy_extension
from models.derivative import CropBox, DerivativeSet, encode_url_path
from models.options import ImageOptions
from models.result import ProcessResult, RenderData
from models.source_image import SourceImage

logger = logging.getLogger("ResponsiveImages")

DEFAULT_CACHE_DIR = "thumbnails/responsive"


def _escape(value: Any) -> str:
    return html.escape(str(value), quote=True)


class ResponsiveImageConfig:
    """Configuration for responsive image processing."""

    def __init__(
        self,
        root: Union[str, Path],
        cache_dir: Union[str, Path] = DEFAULT_CACHE_DIR,
        allowed_roots: Optional[Sequence[Union[str, Path]]] = None,
        lock_ttl: int = DEFAULT_LOCK_TTL,
    ):
        """Initialize configuration.

        Args:
            root: Site root; image references are relative to it
            cache_dir: Derivative cache root, relative to root (or absolute inside it)
            allowed_roots: Directories sources may live in (defaults to root)
            lock_ttl: Seconds before an abandoned generation lock may be reclaimed

        Raises:
            ValueError: If root does not exist or the cache root is outside it
        """
        self.root = canonicalize_path(root)
        if not self.root.is_dir():
            raise ValueError(f"Root is not a directory: {self.root}")

        cache_root = Path(cache_dir)
        if not cache_root.is_absolute():
            cache_root = self.root / cache_root
        self.cache_root = canonicalize_path(cache_root, must_exist=False)
        if not self.cache_root.is_relative_to(self.root) or self.cache_root == self.root:
            raise ValueError(f"Cache directory must be a subdirectory of root: {cache_dir}")

        self.public_cache_dir = self.cache_root.relative_to(self.root).as_posix()
        self.locks_dir = self.cache_root / LOCKS_DIRNAME
        self.allowed_roots = list(allowed_roots) if allowed_roots else [self.root]
        self.lock_ttl = lock_ttl


class ResponsiveImageManager:
    """Resolves sources, keeps their derivative cache current and builds render data."""

    def __init__(
        self,
        config: ResponsiveImageConfig,
        defaults_manager: Optional[DefaultsManager] = None,
        planner: Optional[ThumbnailPlanner] = None,
        generator: Optional[ThumbnailGenerator] = None,
    ):
        self.config = config
        self.defaults_manager = defaults_manager
        self.resolver = SourceResolver(config.root, config.allowed_roots)
        self.planner = planner or ThumbnailPlanner()
        self.generator = generator or ThumbnailGenerator(config.locks_dir, lock_ttl=config.lock_ttl)
        logger.info(f"Initialized ResponsiveImageManager with root={config.root}, cache_root={config.cache_root}")

    def resolve_options(self, options: Optional[Mapping[str, Any]] = None) -> ImageOptions:
        """Merge per-call options over the configured defaults."""
        overrides = dict(options or {})
        if self.defaults_manager is not None:
            merged = self.defaults_manager.merge(overrides)
        else:
            merged = {key: value for key, value in overrides.items() if value is not None}
        return ImageOptions.from_mapping(merged)

    def process(self, reference: Any, options: Optional[Mapping[str, Any]] = None) -> ProcessResult:
        """Process one image reference.

        Args:
            reference: Path string, JSON object text, mapping or object with a path field
            options: Per-call overrides (lazy, webp, sizes, widths, quality, aspect_ratio, alt, css_class)

        Returns:
            ProcessResult; ok=True with data=None when no image is configured
        """
        if is_empty_reference(reference):
            logger.debug("Empty image reference, nothing to render")
            return ProcessResult.empty()

        opts = self.resolve_options(options)

        try:
            source = self.resolver.resolve(reference, default_alt=opts.alt)
            if source.width <= 0 or source.height <= 0:
                raise DimensionReadFailure(f"Cannot read image dimensions: {source.path}")

            if source.is_vector:
                return ProcessResult(ok=True, data=self._vector_data(source, opts))

            return self._process_raster(source, opts)
        except ResponsiveImageError as e:
            logger.warning(f"Image processing failed ({e.error_code}): {e.message}")
            return ProcessResult.failure(e.message, e.error_code)

    def _vector_data(self, source: SourceImage, opts: ImageOptions) -> RenderData:
        url = encode_url_path(source.path)
        return RenderData(
            is_vector=True,
            src=_escape(url),
            srcset="",
            fallback=_escape(url),
            sizes=_escape(opts.sizes),
            alt=source.alt,
            width=source.width,
            height=source.height,
            loading="lazy" if opts.lazy else "eager",
            mime_type=source.mime_type,
            css_class=_escape(opts.css_class),
        )

    def _cache_dir_for(self, source: SourceImage) -> Path:
        """Cache directory mirroring the source's subdirectory under the cache root."""
        segments = [safe_path_segment(part) or "_" for part in source.dirname.split("/") if part]
        cache_dir = self.config.cache_root.joinpath(*segments)
        try:
            cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryCreateFailure(f"Cannot create cache directory {cache_dir}: {e}")
        return cache_dir

    def _process_raster(self, source: SourceImage, opts: ImageOptions) -> ProcessResult:
        crop_box: Optional[CropBox] = None
        if opts.aspect_ratio:
            crop_box = calculate_crop_box(source.width, source.height, opts.aspect_ratio)
        ratio = opts.aspect_ratio or source.ratio

        fallback_extension = legacy_extension(source.mime_type)
        extension = "webp" if opts.webp else fallback_extension

        cache_dir = self._cache_dir_for(source)
        public_cache_dir = cache_dir.relative_to(self.config.root).as_posix()

        requested = self.planner.plan(
            source,
            widths=opts.widths,
            aspect_ratio=ratio,
            quality=opts.quality,
            extension=extension,
            fallback_extension=fallback_extension,
            cache_dir=cache_dir,
            public_cache_dir=public_cache_dir,
            crop_box=crop_box,
        )

        stem = safe_path_segment(source.filename) or "image"
        manifest = ThumbnailManifest.load(cache_dir / manifest_filename(stem, source.hash), source)
        missing = manifest.missing(requested)

        if len(missing) or manifest.needs_build:
            report = self.generator.generate(source, missing, crop_box)
            recorded = manifest.update(requested)
            if report.failed:
                logger.warning(f"{len(report.failed)} thumbnail(s) failed for {source.path}: {report.failed}")
            if report.locked and not recorded:
                logger.info(f"Generation in progress elsewhere for {source.path}, manifest not saved")
            else:
                try:
                    manifest.save()
                except WriteFailure as e:
                    logger.warning(e.message)
        else:
            logger.debug(f"All {len(requested)} thumbnails cached for {source.path}")

        data = self._raster_data(source, opts, requested, manifest, extension, fallback_extension, crop_box)
        return ProcessResult(ok=True, data=data, missing=missing.keys())

    def _raster_data(
        self,
        source: SourceImage,
        opts: ImageOptions,
        requested: DerivativeSet,
        manifest: ThumbnailManifest,
        extension: str,
        fallback_extension: str,
        crop_box: Optional[CropBox],
    ) -> RenderData:
        """Render data from the requested derivatives the manifest records."""
        primary: List[str] = []
        legacy: List[str] = []
        for spec in requested:
            entry = manifest.get_entry(spec)
            if not entry:
                continue
            if spec.extension == extension:
                primary.append(entry)
            elif spec.extension == fallback_extension:
                legacy.append(entry)

        source_url = encode_url_path(source.path)
        fallback_spec = requested.fallback()
        if fallback_spec is not None and manifest.contains(fallback_spec):
            fallback_url = fallback_spec.url
            width, height = fallback_spec.width, fallback_spec.height
        else:
            fallback_url = source_url
            if crop_box is not None:
                width, height = crop_box.width, crop_box.height
            else:
                width, height = source.width, source.height

        return RenderData(
            is_vector=False,
            src=_escape(source_url),
            srcset=_escape(", ".join(primary)),
            fallback=_escape(fallback_url),
            sizes=_escape(opts.sizes),
            alt=source.alt,
            width=width,
            height=height,
            loading="lazy" if opts.lazy else "eager",
            mime_type=MIME_BY_EXTENSION.get(extension, source.mime_type),
            css_class=_escape(opts.css_class),
            fallback_srcset=_escape(", ".join(legacy)),
            fallback_mime_type=MIME_BY_EXTENSION.get(fallback_extension, "") if legacy else "",
        )

    def get_status(self) -> Dict[str, Any]:
        """Configuration summary for the host surface."""
        return {
            "root": str(self.config.root),
            "cache_root": str(self.config.cache_root),
            "public_cache_dir": self.config.public_cache_dir,
            "allowed_roots": [str(path) for path in self.resolver.allowed_roots],
            "lock_ttl": self.config.lock_ttl,
            "backend_available": self.generator.backend.is_available(),
        }
