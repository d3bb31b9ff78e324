"""Source image resolution with path safety checks"""

import hashlib
import html
import json
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import parse_qs, unquote

from image_processor import (
    ALLOWED_MIME_TYPES,
    SVG_MIME_TYPE,
    detect_mime_type,
    read_raster_dimensions,
    read_svg_dimensions,
)
from managers.errors import InvalidReference, NotFound, PathEscape, UnsupportedType
from models.source_image import SourceImage

logger = logging.getLogger("ResponsiveImages")

# Field names accepted for the image path, in priority order
PATH_KEYS = ("imagefile", "path", "src")
ALT_KEYS = ("alt_text", "alt")
EXTERNAL_PREFIXES = ("http://", "https://", "//")
IDENTITY_HASH_LENGTH = 8


def canonicalize_path(path: Union[str, Path], must_exist: bool = True) -> Path:
    """Resolve path to absolute real path (handles symlinks).

    Raises:
        ValueError: If path cannot be resolved and must_exist=True
    """
    try:
        return Path(path).resolve(strict=must_exist)
    except (OSError, RuntimeError) as e:
        raise ValueError(f"Cannot resolve path {path}: {e}")


def is_within(child_path: Union[str, Path], parent_path: Union[str, Path], child_must_exist: bool = True) -> bool:
    """Check if child_path is within parent_path using real path resolution.

    Both paths are canonicalized (symlinks resolved) before comparison, so a
    symlink pointing out of the parent is not considered inside it.
    """
    try:
        child_real = canonicalize_path(child_path, must_exist=child_must_exist)
        parent_real = canonicalize_path(parent_path, must_exist=True)
    except ValueError:
        return False
    return child_real.is_relative_to(parent_real)


def _first_field(fields: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if key in fields:
            return fields[key]
    return None


def _to_mapping(reference: Any) -> Dict[str, Any]:
    if isinstance(reference, bytes):
        reference = reference.decode("utf-8", errors="replace")

    if isinstance(reference, str):
        text = reference.strip()
        if text.startswith("{"):
            try:
                fields = json.loads(text)
            except json.JSONDecodeError as e:
                raise InvalidReference(f"Image reference is not valid JSON: {e}")
        else:
            fields = {PATH_KEYS[0]: text}
    elif isinstance(reference, Mapping):
        fields = dict(reference)
    elif hasattr(reference, "__dict__"):
        fields = dict(vars(reference))
    else:
        raise InvalidReference(f"Unsupported image reference type: {type(reference).__name__}")

    if not isinstance(fields, dict):
        raise InvalidReference(f"Image reference must decode to an object, got {type(fields).__name__}")
    return fields


def normalize_reference(reference: Any) -> Dict[str, str]:
    """Normalize a string path, JSON object text, mapping or object to {"path", "alt"}.

    Raises:
        InvalidReference: If the reference cannot be decoded or has no string path field
    """
    fields = _to_mapping(reference)

    path = _first_field(fields, PATH_KEYS)
    if not isinstance(path, str):
        raise InvalidReference(
            f"Image reference has no usable path field (expected one of {', '.join(PATH_KEYS)})"
        )
    alt = _first_field(fields, ALT_KEYS)
    return {
        "path": path.strip(),
        "alt": alt.strip() if isinstance(alt, str) else "",
    }


def is_empty_reference(reference: Any) -> bool:
    """True when no image is configured at all, as opposed to a broken reference."""
    if reference is None:
        return True
    if isinstance(reference, (str, bytes)) and not reference.strip():
        return True
    try:
        fields = _to_mapping(reference)
    except InvalidReference:
        return False
    if not fields:
        return True
    path = _first_field(fields, PATH_KEYS)
    return isinstance(path, str) and not path.strip()


def split_fragment(src: str) -> Tuple[str, Dict[str, int]]:
    """Split "path#fragment" and read width/height hints from the fragment's query."""
    if "#" not in src:
        return src, {}
    path, fragment = src.split("#", 1)

    hints: Dict[str, int] = {}
    if "?" in fragment:
        params = parse_qs(fragment.split("?", 1)[1])
        for name in ("width", "height"):
            values = params.get(name)
            if not values:
                continue
            try:
                hints[name] = int(float(values[0]))
            except (ValueError, OverflowError):
                continue
    return path, hints


def compute_identity_hash(file_path: Union[str, Path], mtime: int) -> str:
    return hashlib.md5(f"{file_path}{mtime}".encode("utf-8")).hexdigest()[:IDENTITY_HASH_LENGTH]


class SourceResolver:
    """Resolves opaque image references to validated SourceImage objects."""

    def __init__(self, root: Union[str, Path], allowed_roots: Optional[Sequence[Union[str, Path]]] = None):
        self.root = canonicalize_path(root)
        roots = allowed_roots if allowed_roots else [self.root]
        self.allowed_roots: List[Path] = [canonicalize_path(r) for r in roots]

    def resolve(self, reference: Any, default_alt: str = "") -> SourceImage:
        """Resolve and validate a source image.

        Args:
            reference: Path string, JSON object text, mapping or object with a path field
            default_alt: Alt text used when the reference carries none

        Returns:
            SourceImage

        Raises:
            InvalidReference, PathEscape, NotFound, UnsupportedType
        """
        fields = normalize_reference(reference)
        src = fields["path"]
        if not src:
            raise InvalidReference("Image reference has an empty path")

        src, hints = split_fragment(src)

        if src.lower().startswith(EXTERNAL_PREFIXES):
            raise PathEscape(f"External URLs are not allowed: {src}")

        relative = unquote(src).lstrip("/")
        if "\x00" in relative:
            raise PathEscape("Null byte in image path")
        if ".." in re.split(r"[\\/]+", relative):
            raise PathEscape(f"Path traversal detected: {src}")
        if not relative:
            raise InvalidReference("Image reference has an empty path")

        candidate = self.root / relative
        try:
            file_real = canonicalize_path(candidate)
        except ValueError:
            raise NotFound(f"File not found: {Path(relative).name}")

        if not any(is_within(file_real, allowed) for allowed in self.allowed_roots):
            raise PathEscape(f"File is outside the permitted roots: {Path(relative).name}")

        if not file_real.is_file():
            raise NotFound(f"File not found: {Path(relative).name}")

        mime_type = detect_mime_type(file_real)
        if mime_type not in ALLOWED_MIME_TYPES:
            raise UnsupportedType(f"MIME type not supported: {mime_type or 'unknown'}")

        public_path = PurePosixPath(relative.replace("\\", "/"))
        stem = public_path.stem
        extension = public_path.suffix.lower().lstrip(".")
        dirname = "" if str(public_path.parent) == "." else str(public_path.parent)

        alt = fields["alt"] or default_alt.strip() or stem

        width, height = self._resolve_dimensions(file_real, mime_type, hints)

        stat = file_real.stat()
        mtime = int(stat.st_mtime)

        image = SourceImage(
            file_path=file_real,
            path=str(public_path),
            width=width,
            height=height,
            mime_type=mime_type,
            filename=stem,
            extension=extension,
            dirname=dirname,
            hash=compute_identity_hash(file_real, mtime),
            mtime=mtime,
            file_size=stat.st_size,
            alt=html.escape(alt, quote=True),
        )
        logger.debug(f"Resolved source image {image.path} ({width}x{height}, {mime_type}, hash={image.hash})")
        return image

    def _resolve_dimensions(self, file_path: Path, mime_type: str, hints: Dict[str, int]) -> Tuple[int, int]:
        width = hints.get("width", 0)
        height = hints.get("height", 0)
        if width > 0 and height > 0:
            logger.debug(f"Dimensions from reference hints: {width}x{height}")
            return width, height

        if mime_type == SVG_MIME_TYPE:
            return read_svg_dimensions(file_path)
        return read_raster_dimensions(file_path)
