"""Thumbnail generation through the image backend"""

import logging
import os
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Union

from PIL import Image

from image_processor import PillowBackend
from managers.errors import BackendUnavailable, WriteFailure
from managers.generation_lock import DEFAULT_LOCK_TTL, GenerationLock, lock_path_for
from models.derivative import CropBox, DerivativeSet, DerivativeSpec
from models.source_image import SourceImage

logger = logging.getLogger("ResponsiveImages")

THUMBNAIL_FILE_MODE = 0o644


@dataclass
class GenerationReport:
    """What a generate() call did"""
    generated: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # already on disk
    failed: List[str] = field(default_factory=list)
    locked: bool = False


class ThumbnailGenerator:
    """Produces missing derivative files under a time-boxed lock."""

    def __init__(
        self,
        locks_dir: Union[str, Path],
        backend: Optional[PillowBackend] = None,
        lock_ttl: int = DEFAULT_LOCK_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.locks_dir = Path(locks_dir)
        self.backend = backend or PillowBackend()
        self.lock_ttl = lock_ttl
        self.clock = clock

    def check_backend(self, extensions):
        """Raise BackendUnavailable unless every extension can be encoded."""
        if not self.backend.is_available():
            raise BackendUnavailable("Image backend is not available")
        for extension in sorted(set(extensions)):
            if not self.backend.supports(extension):
                raise BackendUnavailable(f"Image backend does not support format: {extension}")

    def generate(
        self,
        source: SourceImage,
        missing: DerivativeSet,
        crop_box: Optional[CropBox] = None,
    ) -> GenerationReport:
        """Write the missing derivatives of source to disk.

        Per-item failures are logged and skipped so they are retried by a
        later request. Returns early with report.locked set if another
        worker holds the lock for this source and crop box.

        Raises:
            BackendUnavailable: If the backend cannot produce the requested formats
        """
        report = GenerationReport()
        if not len(missing):
            return report

        self.check_backend(spec.extension for spec in missing)

        lock = GenerationLock(
            lock_path_for(self.locks_dir, source.hash, crop_box.signature() if crop_box else ""),
            ttl=self.lock_ttl,
            clock=self.clock,
        )
        if not lock.acquire():
            logger.info(f"Generation locked for {source.path}, skipping")
            report.locked = True
            return report

        working: Optional[Image.Image] = None
        try:
            working = self._prepare_working_image(source, missing, crop_box)
            for spec in missing:
                if spec.exists():
                    report.skipped.append(spec.key)
                    continue
                try:
                    self._write_derivative(working, spec)
                except (OSError, ValueError) as e:
                    failure = WriteFailure(f"Failed to write thumbnail {spec.file_path.name}: {e}")
                    logger.warning(failure.message)
                    report.failed.append(spec.key)
                    continue
                report.generated.append(spec.key)
                logger.info(f"Generated thumbnail: {spec.width}x{spec.height} {spec.extension} ({spec.file_path.name})")
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            logger.error(f"Thumbnail generation failed for {source.path}: {e}")
            report.failed.extend(
                spec.key for spec in missing
                if spec.key not in report.generated and spec.key not in report.skipped
                and spec.key not in report.failed
            )
        finally:
            if working is not None:
                working.close()
            lock.release()

        return report

    def _prepare_working_image(
        self,
        source: SourceImage,
        missing: DerivativeSet,
        crop_box: Optional[CropBox],
    ) -> Image.Image:
        """Decode once, crop once, then downsample once to the largest needed width."""
        img = self.backend.open(source.file_path)

        if crop_box is not None and not crop_box.is_full(img.width, img.height):
            cropped = self.backend.crop(img, crop_box)
            img.close()
            img = cropped
            logger.debug(f"Cropped {source.path} to {crop_box.to_dict()}")

        max_width = min(missing.max_width(), img.width)
        if max_width < img.width:
            base_height = max(1, round(max_width * img.height / img.width))
            resized = self.backend.resize(img, max_width, base_height)
            img.close()
            img = resized
            logger.debug(f"Resized {source.path} to working size {max_width}x{base_height}")

        return img

    def _write_derivative(self, working: Image.Image, spec: DerivativeSpec):
        directory = spec.file_path.parent
        directory.mkdir(parents=True, exist_ok=True)

        thumb = self.backend.resize(working, spec.width, spec.height)
        try:
            fd, temp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{spec.file_path.name}.", suffix=".tmp"
            )
        except OSError:
            thumb.close()
            raise
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                self.backend.save(thumb, f, spec.extension, spec.quality)
            os.replace(temp_path, spec.file_path)
            os.chmod(spec.file_path, THUMBNAIL_FILE_MODE)
        except Exception:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise
        finally:
            thumb.close()
