"""Shared fixtures: small generated images inside a throwaway site root"""

from pathlib import Path

import pytest
from PIL import Image


def write_image(path: Path, size=(600, 300), fmt="JPEG", mode="RGB", color=(200, 80, 40)) -> Path:
    """Create a solid-color image file at path (parents included)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    Image.new(mode, size, color).save(path, format=fmt)
    return path


def write_svg(path: Path, attributes: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f'<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<svg xmlns="http://www.w3.org/2000/svg" {attributes}><rect width="10" height="10"/></svg>\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def site_root(tmp_path):
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def banner(site_root):
    """600x300 JPEG at images/banner.jpg"""
    return write_image(site_root / "images" / "banner.jpg")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment defaults out of the tests"""
    for name in (
        "RESPONSIVE_IMAGES_LAZY",
        "RESPONSIVE_IMAGES_WEBP",
        "RESPONSIVE_IMAGES_SIZES",
        "RESPONSIVE_IMAGES_WIDTHS",
        "RESPONSIVE_IMAGES_QUALITY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_image():
    return write_image


@pytest.fixture
def make_svg():
    return write_svg
