"""Tests for exif_reader.py: EXIF orientation probe."""
from unittest.mock import MagicMock, patch

import pytest

from exif_reader import describe_orientation, get_orientation, needs_rotation
from tests.conftest import make_file


def _tag(values):
    tag = MagicMock()
    tag.values = values
    return tag


class TestGetOrientation:
    def test_reads_orientation_value(self, tmp_path):
        f = make_file(tmp_path / "photo.jpg", b"fake")
        with patch("exif_reader.exifread.process_file",
                   return_value={"Image Orientation": _tag([6])}):
            assert get_orientation(f) == 6

    def test_missing_tag_returns_none(self, tmp_path):
        f = make_file(tmp_path / "photo.jpg", b"fake")
        with patch("exif_reader.exifread.process_file", return_value={}):
            assert get_orientation(f) is None

    def test_out_of_range_value_returns_none(self, tmp_path):
        f = make_file(tmp_path / "photo.jpg", b"fake")
        with patch("exif_reader.exifread.process_file",
                   return_value={"Image Orientation": _tag([42])}):
            assert get_orientation(f) is None

    def test_empty_values_returns_none(self, tmp_path):
        f = make_file(tmp_path / "photo.jpg", b"fake")
        with patch("exif_reader.exifread.process_file",
                   return_value={"Image Orientation": _tag([])}):
            assert get_orientation(f) is None

    def test_parser_exception_returns_none(self, tmp_path):
        f = make_file(tmp_path / "photo.jpg", b"fake")
        with patch("exif_reader.exifread.process_file", side_effect=Exception("corrupt")):
            assert get_orientation(f) is None

    def test_missing_file_returns_none(self, tmp_path):
        assert get_orientation(tmp_path / "gone.jpg") is None

    def test_non_image_bytes(self, tmp_path):
        f = make_file(tmp_path / "noise.png", b"\x00\x01\x02 definitely not an image")
        assert get_orientation(f) is None


class TestDescribe:
    @pytest.mark.parametrize("value,expected", [
        (None, "none"),
        (1, "normal"),
        (6, "rotated 90 CW"),
        (8, "rotated 270 CW"),
    ])
    def test_describe(self, value, expected):
        assert describe_orientation(value) == expected

    def test_needs_rotation(self):
        assert not needs_rotation(None)
        assert not needs_rotation(1)
        assert needs_rotation(3)
