"""Time-boxed file lock guarding derivative generation"""

import hashlib
import json
import logging
import math
import os
import time
import uuid
from pathlib import Path
from typing import Callable, Optional, Union

logger = logging.getLogger("ResponsiveImages")

DEFAULT_LOCK_TTL = 30  # seconds
LOCKS_DIRNAME = ".locks"


def lock_path_for(locks_dir: Union[str, Path], identity_hash: str, crop_signature: str = "") -> Path:
    """Lock file for one (source identity, crop box) pair."""
    digest = hashlib.sha1(f"{identity_hash}|{crop_signature}".encode("utf-8")).hexdigest()
    return Path(locks_dir) / f"{digest}.lock"


class GenerationLock:
    """Exclusive lock file with an expiry.

    A held lock younger than its TTL makes acquire() fail immediately; an
    expired one is deleted and taken over. Callers never wait.
    """

    def __init__(
        self,
        path: Union[str, Path],
        ttl: int = DEFAULT_LOCK_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.path = Path(path)
        self.ttl = ttl
        self.clock = clock
        self.token: Optional[str] = None

    @property
    def acquired(self) -> bool:
        return self.token is not None

    def acquire(self) -> bool:
        """Try to take the lock without blocking.

        Returns:
            True if this instance now holds the lock
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create lock directory {self.path.parent}: {e}")
            return False

        if self._create():
            return True

        snapshot = self._snapshot()
        age = self._age(snapshot)
        if age is not None and age < self._recorded_ttl(snapshot):
            logger.info(f"Lock active for {self.path.name} (age {age:.1f}s), skipping generation")
            return False

        return self._reclaim(snapshot)

    def release(self):
        """Remove the lock file if this instance still owns it."""
        if not self.acquired:
            return
        try:
            data = self._parse(self._snapshot())
            if data is None or data.get("token") == self.token:
                self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Cannot remove lock file {self.path}: {e}")
        finally:
            self.token = None

    def __enter__(self) -> "GenerationLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def _create(self) -> bool:
        token = uuid.uuid4().hex
        payload = json.dumps({"created": self.clock(), "ttl": self.ttl, "token": token})
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as e:
            logger.error(f"Cannot create lock file {self.path}: {e}")
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        self.token = token
        return True

    def _reclaim(self, snapshot: Optional[bytes]) -> bool:
        """Move an expired lock aside and take its place.

        Only one worker can rename a given file. If the file moved aside is
        not the one judged expired, another worker reclaimed it first and it
        is put back.
        """
        aside = self.path.with_name(f"{self.path.name}.{uuid.uuid4().hex}.stale")
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            return self._create()
        except OSError as e:
            logger.error(f"Cannot remove expired lock {self.path.name}: {e}")
            return False

        try:
            taken = aside.read_bytes()
        except OSError:
            taken = None

        if snapshot is not None and taken != snapshot:
            logger.info(f"Lock {self.path.name} was reclaimed by another worker, skipping generation")
            try:
                os.link(aside, self.path)
            except FileExistsError:
                pass
            except OSError as e:
                logger.error(f"Cannot restore lock {self.path.name}: {e}")
            self._discard(aside)
            return False

        self._discard(aside)
        logger.info(f"Expired lock removed: {self.path.name}")
        return self._create()

    @staticmethod
    def _discard(path: Path):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Cannot remove lock file {path}: {e}")

    def _snapshot(self) -> Optional[bytes]:
        """Raw lock file contents, None if it cannot be read."""
        try:
            return self.path.read_bytes()
        except OSError:
            return None

    @staticmethod
    def _parse(raw: Optional[bytes]) -> Optional[dict]:
        if not raw:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def _age(self, snapshot: Optional[bytes]) -> Optional[float]:
        if snapshot is None:
            return None
        data = self._parse(snapshot)
        if not data:
            # Another worker may be between create and write
            try:
                return self.clock() - self.path.stat().st_mtime
            except OSError:
                return None
        try:
            created = float(data.get("created") or 0)
        except (TypeError, ValueError, OverflowError):
            return None
        if not math.isfinite(created) or created <= 0:
            return None
        return self.clock() - created

    def _recorded_ttl(self, snapshot: Optional[bytes]) -> float:
        data = self._parse(snapshot)
        try:
            ttl = float(data.get("ttl", self.ttl)) if data else float(self.ttl)
        except (TypeError, ValueError, OverflowError):
            return float(self.ttl)
        return ttl if math.isfinite(ttl) else float(self.ttl)
