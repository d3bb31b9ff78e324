"""Per-request image options"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

DEFAULT_WIDTHS = [640, 1280, 1920]
DEFAULT_QUALITY = 70
DEFAULT_SIZES = "100vw"


def coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def coerce_widths(value: Any) -> List[int]:
    """Accept a list of numbers or a comma separated string; drop invalid entries."""
    if value is None:
        return []
    if isinstance(value, str):
        items = [item.strip() for item in value.split(",")]
    elif isinstance(value, (int, float)):
        items = [value]
    else:
        items = list(value)

    widths = []
    for item in items:
        try:
            width = int(float(item))
        except (TypeError, ValueError, OverflowError):
            continue
        if width > 0:
            widths.append(width)
    return widths


def clamp_quality(value: Any, default: int = DEFAULT_QUALITY) -> int:
    try:
        quality = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(1, min(100, quality))


def parse_aspect_ratio(value: Any) -> Optional[float]:
    """Parse an aspect ratio (width / height) given as a number or a "16:9" / "16/9" string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            ratio = float(value)
        except OverflowError:
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        parts = re.split(r"[:/]", text)
        try:
            if len(parts) == 2:
                denominator = float(parts[1])
                if denominator == 0:
                    return None
                ratio = float(parts[0]) / denominator
            elif len(parts) == 1:
                ratio = float(text)
            else:
                return None
        except (ValueError, OverflowError):
            return None
    if not math.isfinite(ratio) or ratio <= 0:
        return None
    return ratio


@dataclass
class ImageOptions:
    """Resolved options for one processing request"""
    lazy: bool = True
    webp: bool = True  # prefer the modern format for srcset derivatives
    sizes: str = DEFAULT_SIZES
    widths: List[int] = field(default_factory=lambda: list(DEFAULT_WIDTHS))
    quality: int = DEFAULT_QUALITY
    aspect_ratio: Optional[float] = None
    alt: str = ""
    css_class: str = ""

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ImageOptions":
        """Build options from a merged defaults/overrides mapping."""
        widths = coerce_widths(values.get("widths"))
        return cls(
            lazy=coerce_bool(values.get("lazy"), True),
            webp=coerce_bool(values.get("webp"), True),
            sizes=str(values.get("sizes") or DEFAULT_SIZES),
            widths=widths if widths else list(DEFAULT_WIDTHS),
            quality=clamp_quality(values.get("quality")),
            aspect_ratio=parse_aspect_ratio(values.get("aspect_ratio", values.get("aspectRatio"))),
            alt=str(values.get("alt") or ""),
            css_class=str(values.get("css_class", values.get("class")) or ""),
        )
