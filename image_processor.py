"""Image processing utilities for source inspection and derivative encoding"""

import logging
import math
import re
import unicodedata
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError, features

from models.derivative import CropBox

logger = logging.getLogger("ImageProcessor")

ALLOWED_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/svg+xml",
)
SVG_MIME_TYPE = "image/svg+xml"

# Only this many leading bytes of an SVG are ever read
SVG_SNIFF_BYTES = 8192

# Output extension used when a derivative keeps the source's own format
LEGACY_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "png",
    "image/webp": "webp",
}
MIME_BY_EXTENSION = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "svg": SVG_MIME_TYPE,
}
PIL_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
}

# Pillow formats whose files are served as another MIME type
# (MPO is a JPEG with extra frames appended, written by many cameras)
MIME_BY_PIL_FORMAT = {
    "MPO": "image/jpeg",
}

_SVG_ROOT_REGEX = re.compile(r"<svg\b([^>]*)>", re.IGNORECASE | re.DOTALL)
_SAFE_SEGMENT_REGEX = re.compile(r"[^A-Za-z0-9._-]+")


def _svg_attribute(attributes: str, name: str) -> Optional[str]:
    match = re.search(
        r"(?:^|\s)" + name + r"\s*=\s*([\"'])(.*?)\1",
        attributes,
        re.IGNORECASE | re.DOTALL,
    )
    return match.group(2).strip() if match else None


def _svg_length(value: Optional[str]) -> int:
    """Leading number of an SVG length; percentages are not absolute sizes."""
    if not value or value.endswith("%"):
        return 0
    match = re.match(r"([\d.]+)", value)
    if not match:
        return 0
    try:
        return int(float(match.group(1)))
    except (ValueError, OverflowError):
        return 0


def _read_prefix(file_path: Union[str, Path], max_bytes: int = SVG_SNIFF_BYTES) -> bytes:
    with open(file_path, "rb") as f:
        return f.read(max_bytes)


def detect_mime_type(file_path: Union[str, Path]) -> Optional[str]:
    """Detect MIME type from file content, not from the extension.

    Raster formats are identified by Pillow from the file header; SVG is
    recognised by its root element within the first SVG_SNIFF_BYTES.

    Returns:
        MIME type string, or None if the content is not a recognised image
    """
    try:
        with Image.open(file_path) as img:
            fmt = img.format or ""
            mime_type = MIME_BY_PIL_FORMAT.get(fmt) or Image.MIME.get(fmt)
            if mime_type:
                return mime_type
    except (UnidentifiedImageError, Image.DecompressionBombError):
        pass
    except OSError as e:
        logger.warning(f"Cannot open {file_path} for type detection: {e}")
        return None

    try:
        prefix = _read_prefix(file_path).decode("utf-8", errors="ignore")
    except OSError as e:
        logger.warning(f"Cannot read {file_path} for type detection: {e}")
        return None
    if _SVG_ROOT_REGEX.search(prefix):
        return SVG_MIME_TYPE
    return None


def read_raster_dimensions(file_path: Union[str, Path]) -> Tuple[int, int]:
    """Read width and height from the image header without decoding pixels."""
    try:
        with Image.open(file_path) as img:
            return img.size
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning(f"Failed to read raster dimensions of {file_path}: {e}")
        return 0, 0


def read_svg_dimensions(file_path: Union[str, Path], max_bytes: int = SVG_SNIFF_BYTES) -> Tuple[int, int]:
    """Get SVG dimensions from width/height attributes, falling back to viewBox.

    Only the first max_bytes of the file are read.

    Returns:
        (width, height), or (0, 0) if they cannot be determined
    """
    try:
        content = _read_prefix(file_path, max_bytes).decode("utf-8", errors="ignore")
    except OSError as e:
        logger.warning(f"SVG read error for {file_path}: {e}")
        return 0, 0

    match = _SVG_ROOT_REGEX.search(content)
    if not match:
        logger.warning(f"No <svg> root element in first {max_bytes} bytes of {file_path}")
        return 0, 0
    attributes = match.group(1)

    width = _svg_length(_svg_attribute(attributes, "width"))
    height = _svg_length(_svg_attribute(attributes, "height"))
    if width > 0 and height > 0:
        return width, height

    view_box = _svg_attribute(attributes, "viewBox")
    if view_box:
        parts = re.split(r"[\s,]+", view_box)
        if len(parts) == 4:
            try:
                return int(float(parts[2])), int(float(parts[3]))
            except (ValueError, OverflowError):
                pass

    logger.warning(f"SVG has no usable width/height or viewBox: {file_path}")
    return 0, 0


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from zero for positive values."""
    return int(math.floor(value + 0.5))


def calculate_crop_box(width: int, height: int, ratio: float) -> Optional[CropBox]:
    """Centered crop box inscribed in width x height with the given w/h ratio.

    Images relatively taller than the target keep their full width and lose
    height; relatively wider images keep full height and lose width.
    """
    if width <= 0 or height <= 0 or not ratio or ratio <= 0:
        return None

    original_ratio = width / height
    if math.isclose(original_ratio, ratio, rel_tol=1e-9):
        return CropBox(width=width, height=height, x=0, y=0, ratio=ratio)

    if original_ratio < ratio:
        crop_w = width
        crop_h = min(height, max(1, round_half_up(width / ratio)))
        crop_x = 0
        crop_y = round_half_up((height - crop_h) / 2)
    else:
        crop_h = height
        crop_w = min(width, max(1, round_half_up(height * ratio)))
        crop_x = round_half_up((width - crop_w) / 2)
        crop_y = 0

    return CropBox(width=crop_w, height=crop_h, x=crop_x, y=crop_y, ratio=ratio)


def safe_path_segment(segment: str) -> str:
    """Transliterate to ASCII and keep only URL-friendly filename characters."""
    ascii_segment = unicodedata.normalize("NFKD", segment).encode("ascii", "ignore").decode("ascii")
    cleaned = _SAFE_SEGMENT_REGEX.sub("_", ascii_segment)
    cleaned = re.sub(r"_+", "_", cleaned).strip("_")
    return cleaned


class PillowBackend:
    """Image backend built on Pillow"""

    def is_available(self) -> bool:
        return bool(features.check_codec("jpg") and features.check_codec("zlib"))

    def supports(self, extension: str) -> bool:
        extension = extension.lower()
        if extension in ("jpg", "jpeg"):
            return bool(features.check_codec("jpg"))
        if extension == "png":
            return bool(features.check_codec("zlib"))
        if extension == "webp":
            return bool(features.check_module("webp"))
        return False

    def open(self, file_path: Union[str, Path]) -> Image.Image:
        """Decode the full image once, normalizing to RGB or RGBA."""
        with Image.open(file_path) as loaded:
            loaded.load()
            if loaded.mode == "RGB" or loaded.mode == "RGBA":
                return loaded.copy()
            has_alpha = loaded.mode in ("RGBA", "LA", "PA") or "transparency" in loaded.info
            return loaded.convert("RGBA" if has_alpha else "RGB")

    def crop(self, img: Image.Image, box: CropBox) -> Image.Image:
        return img.crop((box.x, box.y, box.x + box.width, box.y + box.height))

    def resize(self, img: Image.Image, width: int, height: int) -> Image.Image:
        if img.size == (width, height):
            return img.copy()
        return img.resize((width, height), Image.Resampling.LANCZOS)

    def save(self, img: Image.Image, fp, extension: str, quality: int):
        """Encode img into an open binary file object."""
        pil_format = PIL_FORMATS.get(extension.lower())
        if not pil_format:
            raise ValueError(f"Unsupported target format: {extension}")

        save_kwargs: Dict[str, Any] = {"format": pil_format}
        if pil_format == "JPEG":
            if img.mode != "RGB":
                # White background for transparency
                background = Image.new("RGB", img.size, (255, 255, 255))
                background.paste(img, mask=img.split()[-1] if img.mode == "RGBA" else None)
                img = background
            save_kwargs.update({"quality": quality, "optimize": True})
        elif pil_format == "WEBP":
            save_kwargs.update({"quality": quality, "method": 5})
        else:
            # PNG doesn't use quality, but we can optimize
            save_kwargs["optimize"] = True

        img.save(fp, **save_kwargs)
