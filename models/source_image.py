"""Source image data model"""

from dataclasses import dataclass, field
from pathlib import Path

SVG_MIME_TYPE = "image/svg+xml"


@dataclass(frozen=True)
class SourceImage:
    """Validated origin asset, built fresh for every request"""
    file_path: Path  # absolute, symlinks resolved
    path: str  # public web path as referenced, fragment removed
    width: int
    height: int
    mime_type: str
    filename: str  # stem
    extension: str  # lower-cased, without dot
    dirname: str  # directory relative to the site root, posix separators
    hash: str  # identity hash, changes when the file is replaced
    mtime: int
    file_size: int
    alt: str = ""  # HTML-escaped
    ratio: float = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "ratio", (self.width / self.height) if self.height > 0 else 1.0)

    @property
    def is_vector(self) -> bool:
        return self.mime_type == SVG_MIME_TYPE

    def snapshot(self) -> dict:
        """Source fields recorded in the manifest."""
        return {
            "path": self.path,
            "mtime": self.mtime,
            "size": self.file_size,
            "width": self.width,
            "height": self.height,
            "mime": self.mime_type,
        }
