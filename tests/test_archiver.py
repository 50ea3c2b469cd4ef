"""Tests for archiver.py: configuration parsing, fatal preconditions, CLI entry point."""
from pathlib import Path

import pytest

import archiver
from archiver import (
    LOG_FILENAME,
    build_parser,
    check_source,
    default_target,
    main,
    parse_size,
    run_archive,
)
from codec import CodecUnavailableError
from tests.conftest import FakeCodec, by_scale, make_file


def _raise_unavailable(explicit=None):
    raise CodecUnavailableError("ImageMagick not found")


class TestParseSize:
    @pytest.mark.parametrize("raw,expected", [
        ("1048576", 1_048_576),
        ("900k", 900 * 1024),
        ("900KB", 900 * 1024),
        ("2M", 2 * 1024**2),
        ("1.5MiB", int(1.5 * 1024**2)),
        ("1g", 1024**3),
    ])
    def test_units(self, raw, expected):
        assert parse_size(raw) == expected

    def test_parser_default_budget(self):
        args = build_parser().parse_args(["/tmp"])
        assert args.max_bytes == 1_048_576

    def test_parser_accepts_override(self):
        assert build_parser().parse_args(["/tmp", "--max-bytes", "2097152"]).max_bytes == 2_097_152

    @pytest.mark.parametrize("bad", ["0", "-5", "lots", "inf", "nan"])
    def test_parser_rejects_invalid_budget(self, bad):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["/tmp", "--max-bytes", bad])


class TestPreconditions:
    def test_missing_source(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            check_source(tmp_path / "nope")

    def test_source_is_file(self, tmp_path):
        f = make_file(tmp_path / "file.jpg")
        with pytest.raises(NotADirectoryError):
            check_source(f)

    def test_default_target_is_sibling(self, tmp_path):
        assert default_target(tmp_path / "Trip") == tmp_path / "Trip_archive"

    def test_run_rejects_target_equal_to_source(self, src):
        with pytest.raises(ValueError):
            run_archive(src, target_root=src, codec=FakeCodec(by_scale({})), use_progress=False)

    def test_codec_unavailable_stops_before_any_file(self, src, tgt, monkeypatch):
        make_file(src / "photo.jpg")
        make_file(src / "clip.mp4")
        monkeypatch.setattr(archiver, "detect_codec", _raise_unavailable)
        with pytest.raises(CodecUnavailableError):
            run_archive(src, target_root=tgt, use_progress=False)
        assert sorted(p.name for p in tgt.iterdir()) == [LOG_FILENAME]
        assert "[ERR] ImageMagick not found" in (tgt / LOG_FILENAME).read_text()


class TestRunArchive:
    def test_full_run_with_default_locations(self, src):
        make_file(src / "a" / "photo.jpg")
        make_file(src / "clip.mp4")
        stats = run_archive(src, codec=FakeCodec(by_scale({100: 10})), use_progress=False)
        target = default_target(src.resolve())
        assert stats.converted == 1
        assert stats.copied == 1
        assert (target / "a" / "photo.jpeg").exists()
        assert "Summary: converted=1" in (target / LOG_FILENAME).read_text()

    def test_custom_log_path(self, src, tgt, tmp_path):
        make_file(src / "photo.jpg")
        log_path = tmp_path / "elsewhere" / "log.txt"
        run_archive(
            src, target_root=tgt, log_path=log_path,
            codec=FakeCodec(by_scale({100: 10})), use_progress=False,
        )
        assert "[OK] Converted photo.jpg" in log_path.read_text()
        assert not (tgt / LOG_FILENAME).exists()


class TestMain:
    def test_success_exit_code_and_summary(self, src, tgt, monkeypatch, capsys):
        make_file(src / "photo.jpg")
        monkeypatch.setattr(archiver, "detect_codec", lambda explicit=None: FakeCodec(by_scale({100: 10})))
        code = main([str(src), "--target", str(tgt), "--no-progress"])
        assert code == 0
        out = capsys.readouterr().out
        assert "Media Archive Summary" in out
        assert "Converted   :      1 images" in out

    def test_per_file_errors_still_exit_zero(self, src, tgt, monkeypatch):
        make_file(src / "photo.jpg")
        monkeypatch.setattr(archiver, "detect_codec", lambda explicit=None: FakeCodec(by_scale({})))
        assert main([str(src), "--target", str(tgt), "--no-progress"]) == 0

    def test_missing_source_is_usage_error(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            main([str(tmp_path / "missing")])
        assert exc.value.code == 2

    def test_codec_unavailable_exits_one(self, src, tgt, monkeypatch, capsys):
        make_file(src / "photo.jpg")
        monkeypatch.setattr(archiver, "detect_codec", _raise_unavailable)
        assert main([str(src), "--target", str(tgt), "--no-progress"]) == 1
        assert "ImageMagick not found" in capsys.readouterr().err

    def test_magick_flag_passed_through(self, src, tgt, monkeypatch):
        seen = []

        def fake_detect(explicit=None):
            seen.append(explicit)
            return FakeCodec(by_scale({100: 10}))

        make_file(src / "photo.jpg")
        monkeypatch.setattr(archiver, "detect_codec", fake_detect)
        main([str(src), "--target", str(tgt), "--no-progress", "--magick", "magick7"])
        assert seen == ["magick7"]

    def test_log_file_flag(self, src, tgt, tmp_path, monkeypatch):
        make_file(src / "clip.mp4")
        log_path = tmp_path / "custom.log"
        monkeypatch.setattr(archiver, "detect_codec", lambda explicit=None: FakeCodec(by_scale({})))
        main([str(src), "--target", str(tgt), "--no-progress", "--log-file", str(log_path)])
        assert "[OK] Copied clip.mp4" in Path(log_path).read_text()
