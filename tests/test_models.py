"""Tests for data models: derivatives, options and results"""

from pathlib import Path

import pytest

from models.derivative import ROLE_FALLBACK, ROLE_THUMBNAIL, DerivativeSet, DerivativeSpec, encode_url_path
from models.options import ImageOptions, coerce_widths, parse_aspect_ratio
from models.result import ProcessResult, RenderData
from models.source_image import SourceImage


def make_spec(width, height, extension="jpg", quality=75, role=ROLE_THUMBNAIL):
    filename = f"banner-abcd1234-q{quality}-{width}x{height}.{extension}"
    return DerivativeSpec(
        width=width,
        height=height,
        file_path=Path("/cache") / filename,
        extension=extension,
        quality=quality,
        role=role,
        public_path=f"thumbnails/{filename}",
    )


class TestDerivativeSpec:
    """Tests for DerivativeSpec"""

    def test_key_and_srcset(self):
        spec = make_spec(480, 240, "webp")
        assert spec.key == "75:webp:480x240"
        assert spec.url == "/thumbnails/banner-abcd1234-q75-480x240.webp"
        assert spec.srcset_entry == "/thumbnails/banner-abcd1234-q75-480x240.webp 480w"
        assert spec.is_webp is True
        assert spec.is_fallback is False

    def test_invalid_values(self):
        with pytest.raises(ValueError, match="role"):
            make_spec(10, 10, role="hero")
        with pytest.raises(ValueError, match="dimensions"):
            make_spec(0, 10)
        with pytest.raises(ValueError, match="quality"):
            make_spec(10, 10, quality=101)

    def test_url_encoding_per_segment(self):
        assert encode_url_path("images/my photo#1.jpg") == "/images/my%20photo%231.jpg"
        assert encode_url_path("/a/b.jpg") == "/a/b.jpg"


class TestDerivativeSet:
    """Tests for DerivativeSet"""

    def test_ordered_by_width(self):
        specs = DerivativeSet([make_spec(1280, 640), make_spec(480, 240), make_spec(3000, 1500)])
        assert [spec.width for spec in specs] == [480, 1280, 3000]
        assert len(specs) == 3

    def test_same_key_collapses_last_wins(self):
        """A fallback with a thumbnail's key replaces it"""
        specs = DerivativeSet([make_spec(1280, 640), make_spec(1280, 640, role=ROLE_FALLBACK)])
        assert len(specs) == 1
        assert specs.fallback().key == "75:jpg:1280x640"
        assert specs.fallback_url().endswith("-1280x640.jpg")

    def test_equal_width_ties_by_key(self):
        specs = DerivativeSet([make_spec(1280, 640, "webp"), make_spec(1280, 640, "jpg", role=ROLE_FALLBACK)])
        assert specs.keys() == ["75:jpg:1280x640", "75:webp:1280x640"]

    def test_srcset_by_extension(self):
        specs = DerivativeSet([make_spec(480, 240, "webp"), make_spec(1280, 640, "jpg", role=ROLE_FALLBACK)])
        assert specs.srcset("webp") == ["/thumbnails/banner-abcd1234-q75-480x240.webp 480w"]
        assert len(specs.srcset()) == 2
        assert "75:webp:480x240" in specs
        assert specs.max_width() == 1280

    def test_no_fallback(self):
        specs = DerivativeSet([make_spec(480, 240)])
        assert specs.fallback() is None
        assert specs.fallback_url() == ""

    def test_rejects_other_objects(self):
        with pytest.raises(TypeError):
            DerivativeSet(["75:jpg:1x1"])


class TestImageOptions:
    """Tests for ImageOptions and value coercion"""

    def test_defaults(self):
        options = ImageOptions.from_mapping({})
        assert options.lazy is True
        assert options.webp is True
        assert options.sizes == "100vw"
        assert options.widths == [640, 1280, 1920]
        assert options.quality == 70
        assert options.aspect_ratio is None

    def test_coercion(self):
        options = ImageOptions.from_mapping({
            "lazy": "false",
            "webp": 0,
            "widths": "480, 1280, wide, -5",
            "quality": "150",
            "aspectRatio": "16:9",
            "class": "hero",
        })
        assert options.lazy is False
        assert options.webp is False
        assert options.widths == [480, 1280]
        assert options.quality == 100
        assert options.aspect_ratio == pytest.approx(16 / 9)
        assert options.css_class == "hero"

    def test_quality_floor(self):
        assert ImageOptions.from_mapping({"quality": -3}).quality == 1

    def test_widths_forms(self):
        assert coerce_widths([320.0, "640"]) == [320, 640]
        assert coerce_widths(800) == [800]
        assert coerce_widths(None) == []

    def test_aspect_ratio_forms(self):
        assert parse_aspect_ratio(1.5) == 1.5
        assert parse_aspect_ratio("4/3") == pytest.approx(4 / 3)
        assert parse_aspect_ratio("2") == 2.0
        assert parse_aspect_ratio("16:0") is None
        assert parse_aspect_ratio("0") is None
        assert parse_aspect_ratio("wide") is None
        assert parse_aspect_ratio("") is None
        assert parse_aspect_ratio(True) is None

    def test_overflowing_values(self):
        """Infinite or oversized numbers are treated as invalid"""
        assert coerce_widths("200,inf,1e999") == [200]
        assert coerce_widths([float("inf"), 300]) == [300]
        assert ImageOptions.from_mapping({"quality": "inf"}).quality == 70
        assert ImageOptions.from_mapping({"widths": "inf"}).widths == [640, 1280, 1920]
        assert parse_aspect_ratio(10 ** 400) is None
        assert parse_aspect_ratio("inf") is None
        assert parse_aspect_ratio("1e999:1") is None


class TestResults:
    """Tests for SourceImage and ProcessResult"""

    def test_source_ratio(self):
        common = dict(
            file_path=Path("/site/a.jpg"), path="a.jpg", mime_type="image/jpeg",
            filename="a", extension="jpg", dirname="", hash="abcd1234", mtime=1, file_size=1,
        )
        assert SourceImage(width=300, height=150, **common).ratio == 2.0
        assert SourceImage(width=300, height=0, **common).ratio == 1.0

    def test_result_dict(self):
        data = RenderData(
            is_vector=False, src="/a.jpg", srcset="", fallback="/a.jpg", sizes="100vw",
            alt="a", width=10, height=5, loading="lazy", mime_type="image/jpeg",
        )
        result = ProcessResult(ok=True, data=data).to_dict()
        assert result["ok"] is True
        assert result["error"] is None
        assert result["data"]["decoding"] == "async"
        assert result["data"]["width"] == 10

    def test_empty_and_failure(self):
        assert ProcessResult.empty().to_dict() == {"ok": True, "error": None, "error_code": None, "data": None}
        failure = ProcessResult.failure("nope", "NOT_FOUND")
        assert failure.ok is False
        assert failure.error_code == "NOT_FOUND"
        assert failure.data is None
