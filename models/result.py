"""Processing result models"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class RenderData:
    """Presentation-ready values; every string is HTML-attribute-escaped"""
    is_vector: bool
    src: str
    srcset: str
    fallback: str
    sizes: str
    alt: str
    width: int
    height: int
    loading: str  # "lazy" | "eager"
    mime_type: str  # type of the primary <source> element
    decoding: str = "async"
    css_class: str = ""
    fallback_srcset: str = ""  # legacy-format srcset when it differs from the primary one
    fallback_mime_type: str = ""


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one process() call"""
    ok: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    data: Optional[RenderData] = None
    missing: List[str] = field(default_factory=list)  # derivative keys found missing before generation

    @classmethod
    def empty(cls) -> "ProcessResult":
        """No image configured: success with nothing to render."""
        return cls(ok=True)

    @classmethod
    def failure(cls, message: str, error_code: str) -> "ProcessResult":
        return cls(ok=False, error=message, error_code=error_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error,
            "error_code": self.error_code,
            "data": asdict(self.data) if self.data else None,
        }
