"""Derivative image data models"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional
from urllib.parse import quote

ROLE_THUMBNAIL = "thumbnail"
ROLE_FALLBACK = "fallback"
ROLES = (ROLE_THUMBNAIL, ROLE_FALLBACK)


def encode_url_path(path: str) -> str:
    """Web URL for a site-relative path, percent-encoded per segment."""
    segments = path.replace("\\", "/").lstrip("/").split("/")
    return "/" + "/".join(quote(segment, safe="") for segment in segments)


@dataclass(frozen=True)
class CropBox:
    """Rectangle cut out of the source before resizing"""
    width: int
    height: int
    x: int
    y: int
    ratio: float

    def is_full(self, width: int, height: int) -> bool:
        """True if the box covers the whole width x height image."""
        return self.width >= width and self.height >= height and self.x == 0 and self.y == 0

    def signature(self) -> str:
        return f"{self.width}x{self.height}+{self.x}+{self.y}"

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height, "x": self.x, "y": self.y}


@dataclass(frozen=True)
class DerivativeSpec:
    """One requested output image"""
    width: int
    height: int
    file_path: Path
    extension: str
    quality: int
    role: str
    public_path: str  # web-relative path, unencoded, no leading slash

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Invalid thumbnail role: {self.role}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid thumbnail dimensions: {self.width}x{self.height}")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"Invalid quality: {self.quality}")

    @property
    def key(self) -> str:
        return f"{self.quality}:{self.extension}:{self.width}x{self.height}"

    @property
    def url(self) -> str:
        return encode_url_path(self.public_path)

    @property
    def srcset_entry(self) -> str:
        return f"{self.url} {self.width}w"

    @property
    def is_fallback(self) -> bool:
        return self.role == ROLE_FALLBACK

    @property
    def is_webp(self) -> bool:
        return self.extension == "webp"

    def exists(self) -> bool:
        return self.file_path.is_file()


class DerivativeSet:
    """Ordered collection of DerivativeSpec, unique by key, ascending by width.

    A spec added with an existing key replaces the earlier one, so a
    fallback appended last takes over a thumbnail slot of the same size.
    """

    def __init__(self, specs: Iterable[DerivativeSpec] = ()):
        by_key: Dict[str, DerivativeSpec] = {}
        for spec in specs:
            if not isinstance(spec, DerivativeSpec):
                raise TypeError("DerivativeSet only accepts DerivativeSpec objects")
            by_key[spec.key] = spec
        self._specs: List[DerivativeSpec] = sorted(
            by_key.values(), key=lambda s: (s.width, s.height, s.key)
        )

    def __iter__(self) -> Iterator[DerivativeSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, key: object) -> bool:
        return any(spec.key == key for spec in self._specs)

    def __repr__(self) -> str:
        return f"DerivativeSet({self.keys()!r})"

    def all(self) -> List[DerivativeSpec]:
        return list(self._specs)

    def keys(self) -> List[str]:
        return [spec.key for spec in self._specs]

    def srcset(self, extension: Optional[str] = None) -> List[str]:
        """Srcset fragments, optionally restricted to one output extension."""
        return [
            spec.srcset_entry
            for spec in self._specs
            if extension is None or spec.extension == extension
        ]

    def fallback(self) -> Optional[DerivativeSpec]:
        for spec in self._specs:
            if spec.is_fallback:
                return spec
        return None

    def fallback_url(self) -> str:
        spec = self.fallback()
        return spec.url if spec else ""

    def max_width(self) -> int:
        return max((spec.width for spec in self._specs), default=0)
