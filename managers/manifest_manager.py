"""Per-source thumbnail manifest: durable record of generated derivatives"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from managers.errors import ManifestCorrupt, WriteFailure
from models.derivative import DerivativeSet, DerivativeSpec
from models.source_image import SourceImage

logger = logging.getLogger("ResponsiveImages")

MANIFEST_VERSION = 1
MANIFEST_FILE_MODE = 0o644

STATE_ABSENT = "absent"
STATE_STALE = "stale"
STATE_VALID = "valid"


def manifest_filename(stem: str, identity_hash: str) -> str:
    return f"{stem}-{identity_hash}.manifest.json"


def manifest_sort_key(key: str) -> Tuple[int, str, int, int]:
    """Sort key for "quality:extension:WxH" derivative keys.

    Malformed keys sort last, after every well-formed one.
    """
    try:
        quality, extension, size = key.split(":")
        width, height = (int(part) for part in size.split("x"))
        return int(quality), extension, width, height
    except ValueError:
        return 1_000_000, key, 0, 0


def _read_manifest(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        raise ManifestCorrupt(f"Cannot read manifest {path.name}: {e}")
    if not isinstance(data, dict):
        raise ManifestCorrupt(f"Manifest {path.name} is not a JSON object")
    return data


class ThumbnailManifest:
    """Cache index for one source image.

    States:
        absent: no sidecar file, everything requested is missing
        stale: unreadable, wrong version, or recorded source mtime/size no
            longer matches; old entries are discarded
        valid: entries are trusted, only unknown keys are missing
    """

    def __init__(self, path: Path, data: Dict[str, Any], state: str):
        self.path = Path(path)
        self.data = data
        self.state = state

    @classmethod
    def load(cls, path: Path, source: SourceImage) -> "ThumbnailManifest":
        path = Path(path)
        if not path.is_file():
            logger.debug(f"Manifest doesn't exist: {path.name}")
            return cls(path, cls._initial_data(source), STATE_ABSENT)

        try:
            data = _read_manifest(path)
        except ManifestCorrupt as e:
            logger.warning(f"{e}; rebuilding")
            return cls(path, cls._initial_data(source), STATE_STALE)

        if data.get("version") != MANIFEST_VERSION:
            logger.info(f"Manifest version mismatch in {path.name} ({data.get('version')!r}), rebuilding")
            return cls(path, cls._initial_data(source), STATE_STALE)

        recorded = data.get("source")
        if not isinstance(recorded, dict) or (
            recorded.get("mtime") != source.mtime or recorded.get("size") != source.file_size
        ):
            logger.info(f"Manifest source snapshot mismatch in {path.name}, rebuilding")
            return cls(path, cls._initial_data(source), STATE_STALE)

        if not isinstance(data.get("thumbnails"), dict):
            data["thumbnails"] = {}

        logger.debug(f"Manifest matches source image: {path.name}")
        return cls(path, data, STATE_VALID)

    @staticmethod
    def _initial_data(source: SourceImage) -> Dict[str, Any]:
        return {
            "version": MANIFEST_VERSION,
            "source": source.snapshot(),
            "thumbnails": {},
        }

    @property
    def needs_build(self) -> bool:
        return self.state != STATE_VALID

    @property
    def thumbnails(self) -> Dict[str, str]:
        return self.data["thumbnails"]

    def contains(self, spec: DerivativeSpec) -> bool:
        return bool(self.thumbnails.get(spec.key))

    def get_entry(self, spec: DerivativeSpec) -> Optional[str]:
        return self.thumbnails.get(spec.key)

    def missing(self, requested: DerivativeSet) -> DerivativeSet:
        """Requested derivatives whose key the manifest does not record."""
        missing = [spec for spec in requested if not self.contains(spec)]
        if missing:
            logger.debug(f"Missing thumbnails for {self.path.name}: {[spec.key for spec in missing]}")
        return DerivativeSet(missing)

    def update(self, specs: Iterable[DerivativeSpec]) -> int:
        """Record derivatives that actually exist on disk; returns how many were recorded."""
        recorded = 0
        for spec in specs:
            if not spec.exists():
                logger.debug(f"Skipping manifest entry {spec.key}: file does not exist ({spec.file_path})")
                continue
            self.thumbnails[spec.key] = spec.srcset_entry
            recorded += 1
        return recorded

    def to_json(self) -> str:
        data = dict(self.data)
        data["thumbnails"] = {
            key: self.thumbnails[key] for key in sorted(self.thumbnails, key=manifest_sort_key)
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    def save(self):
        """Atomic write: write to a unique temp file in the same directory, then rename."""
        payload = self.to_json()
        try:
            fd, temp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
        except OSError as e:
            raise WriteFailure(f"Cannot create temp file for manifest {self.path.name}: {e}")

        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(temp_path, self.path)
            os.chmod(self.path, MANIFEST_FILE_MODE)
        except OSError as e:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise WriteFailure(f"Failed to save manifest {self.path.name}: {e}")

        self.state = STATE_VALID
        logger.info(f"Saved manifest {self.path.name} ({len(self.thumbnails)} thumbnails)")
