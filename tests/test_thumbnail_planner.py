"""Tests for derivative planning

Run with pytest from project root:
    pytest tests/test_thumbnail_planner.py -v
"""

from pathlib import Path

import pytest

from image_processor import calculate_crop_box
from managers.errors import NoValidSizes
from managers.thumbnail_planner import ThumbnailPlanner, derivative_filename, legacy_extension
from models.source_image import SourceImage

CACHE_DIR = Path("/site/thumbnails/responsive/images")
PUBLIC_DIR = "thumbnails/responsive/images"


def make_source(width=3000, height=1500, filename="banner", mime_type="image/jpeg"):
    return SourceImage(
        file_path=Path(f"/site/images/{filename}.jpg"),
        path=f"images/{filename}.jpg",
        width=width,
        height=height,
        mime_type=mime_type,
        filename=filename,
        extension="jpg",
        dirname="images",
        hash="abcd1234",
        mtime=1700000000,
        file_size=1000,
    )


def plan(source, widths, extension="webp", fallback_extension="jpg", quality=75, aspect_ratio=None,
         crop_box=None, planner=None):
    planner = planner or ThumbnailPlanner()
    return planner.plan(
        source,
        widths=widths,
        aspect_ratio=aspect_ratio or source.ratio,
        quality=quality,
        extension=extension,
        fallback_extension=fallback_extension,
        cache_dir=CACHE_DIR,
        public_cache_dir=PUBLIC_DIR,
        crop_box=crop_box,
    )


class TestBannerExample:
    """3000x1500 banner, widths [480, 1280, 4000], quality 75"""

    def test_webp_thumbnails_plus_jpeg_fallback(self):
        specs = plan(make_source(), [480, 1280, 4000])

        thumbnails = [spec for spec in specs if not spec.is_fallback]
        assert [(spec.width, spec.height) for spec in thumbnails] == [(480, 240), (1280, 640), (3000, 1500)]
        assert all(spec.extension == "webp" for spec in thumbnails)

        fallback = specs.fallback()
        assert (fallback.width, fallback.height) == (1280, 640)
        assert fallback.extension == "jpg"
        assert len(specs) == 4
        assert specs.keys() == [
            "75:webp:480x240",
            "75:jpg:1280x640",
            "75:webp:1280x640",
            "75:webp:3000x1500",
        ]

    def test_same_format_shares_1280_key(self):
        """Without WebP the fallback and the 1280 thumbnail are one derivative"""
        specs = plan(make_source(), [480, 1280, 4000], extension="jpg")
        assert specs.keys() == ["75:jpg:480x240", "75:jpg:1280x640", "75:jpg:3000x1500"]
        assert specs.fallback().key == "75:jpg:1280x640"

    def test_paths(self):
        specs = plan(make_source(), [480])
        spec = next(spec for spec in specs if spec.is_webp)
        assert spec.file_path == CACHE_DIR / "banner-abcd1234-q75-480x240.webp"
        assert spec.srcset_entry == "/thumbnails/responsive/images/banner-abcd1234-q75-480x240.webp 480w"


class TestPlanningProperties:
    """Invariants of ThumbnailPlanner.plan"""

    def test_deterministic(self):
        first = plan(make_source(), [1920, 640, 1280, 640])
        second = plan(make_source(), [1920, 640, 1280, 640])
        assert first.keys() == second.keys()
        assert [spec.file_path for spec in first] == [spec.file_path for spec in second]

    def test_never_upscale(self):
        source = make_source(800, 600)
        for spec in plan(source, [100, 799, 5000, 6000, 10000]):
            assert spec.width <= 800
            assert spec.height <= 600

    def test_single_full_size_entry(self):
        """Duplicate full-size requests collapse to one"""
        specs = plan(make_source(800, 600), [800, 5000, 6000], extension="png", fallback_extension="png")
        full = [spec for spec in specs if spec.width == 800 and not spec.is_fallback]
        assert len(full) == 1
        assert specs.keys() == ["75:png:800x600"]

    def test_fallback_capped(self):
        specs = plan(make_source(4000, 2000), [2000, 4000])
        assert specs.fallback().width == 1280

    def test_fallback_follows_largest_request(self):
        specs = plan(make_source(), [320, 640])
        assert specs.fallback().width == 640

    def test_aspect_ratio_crop(self):
        """Square crop of the banner gives square derivatives"""
        source = make_source()
        box = calculate_crop_box(source.width, source.height, 1.0)
        specs = plan(source, [480, 1280, 4000], aspect_ratio=1.0, crop_box=box)
        assert all(spec.width == spec.height for spec in specs)
        assert max(spec.width for spec in specs) == 1500

    def test_portrait_crop_bounds(self):
        """Derivative sizes stay inside a portrait crop box"""
        source = make_source(1000, 3000)
        box = calculate_crop_box(source.width, source.height, 0.5)
        for spec in plan(source, [400, 1000, 2000], aspect_ratio=0.5, crop_box=box):
            assert spec.width <= box.width
            assert spec.height <= box.height

    def test_invalid_widths_ignored(self):
        specs = plan(make_source(), [0, -10, 640])
        assert [spec.width for spec in specs if not spec.is_fallback] == [640]


class TestSafetyLimits:
    """Tests for dimension and pixel ceilings"""

    def test_oversized_dropped(self):
        planner = ThumbnailPlanner(max_dimension=1000)
        specs = plan(make_source(), [480, 2000], planner=planner)
        assert specs.keys() == ["75:webp:480x240"]
        assert specs.fallback() is None

    def test_pixel_ceiling(self):
        planner = ThumbnailPlanner(max_pixels=100_000)
        specs = plan(make_source(), [400, 480], planner=planner)
        assert [spec.width for spec in specs] == [400]

    def test_nothing_left(self):
        with pytest.raises(NoValidSizes):
            plan(make_source(), [480], planner=ThumbnailPlanner(max_dimension=100))

    def test_degenerate_height(self):
        """A 1px-wide derivative of a 3:1 source has no height"""
        with pytest.raises(NoValidSizes):
            plan(make_source(3, 1), [1])


class TestHelpers:
    """Tests for filename and extension helpers"""

    def test_legacy_extension(self):
        assert legacy_extension("image/jpeg") == "jpg"
        assert legacy_extension("image/png") == "png"
        assert legacy_extension("image/gif") == "png"
        assert legacy_extension("image/webp") == "webp"

    def test_filename_sanitized(self):
        assert derivative_filename("Mein Bild (2)", "abcd1234", 70, 640, 480, "webp") == \
            "Mein_Bild_2-abcd1234-q70-640x480.webp"
        assert derivative_filename("日本", "abcd1234", 70, 64, 48, "jpg") == "image-abcd1234-q70-64x48.jpg"
