"""
Shared fixtures for the media-archiver test suite.
"""
import os
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from run_log import close_run_log, open_run_log


# ── File-creation helpers ─────────────────────────────────────────────────────

def make_file(
    path: Path,
    content: bytes = b"dummy content",
    mtime_ns: Optional[int] = None,
) -> Path:
    """Create a file with the given content; create parent dirs as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime_ns is not None:
        os.utime(path, ns=(mtime_ns, mtime_ns))
    return path


# ── Fake codec ────────────────────────────────────────────────────────────────

def directive_scale(directives: List[str]) -> int:
    return int(directives[directives.index("-resize") + 1].rstrip("%"))


def directive_flattens(directives: List[str]) -> bool:
    return "-alpha" in directives


class FakeCodec:
    """
    Stands in for ImageMagick. `sizes(source, scale, flatten)` returns the
    byte size to write, or None to write nothing. `status(...)` gives the
    exit code (default: 0 when a file was written, 1 otherwise).
    """

    def __init__(
        self,
        sizes: Callable[[Path, int, bool], Optional[int]],
        status: Optional[Callable[[Path, int, bool], int]] = None,
    ) -> None:
        self.sizes = sizes
        self.status = status
        self.calls = []

    def encode(self, source: Path, dest: Path, directives: List[str]) -> int:
        scale = directive_scale(directives)
        flatten = directive_flattens(directives)
        self.calls.append((Path(source), Path(dest), scale, flatten))
        size = self.sizes(Path(source), scale, flatten)
        if size is not None:
            Path(dest).write_bytes(b"\xff" * size)
        if self.status is not None:
            return self.status(Path(source), scale, flatten)
        return 0 if size is not None else 1

    @property
    def scales(self) -> List[int]:
        return [scale for _, _, scale, _ in self.calls]

    def __repr__(self) -> str:
        return "FakeCodec()"


def by_scale(table: dict, default: Optional[int] = None):
    """sizes() callback returning table[scale] regardless of alpha mode."""
    return lambda source, scale, flatten: table.get(scale, default)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def src(tmp_path: Path) -> Path:
    """Empty source directory."""
    d = tmp_path / "source"
    d.mkdir()
    return d


@pytest.fixture
def tgt(tmp_path: Path) -> Path:
    """Destination root (not created)."""
    return tmp_path / "target"


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "run.txt"


@pytest.fixture
def run_logger(log_file: Path):
    logger = open_run_log(log_file)
    yield logger
    close_run_log(logger)


@pytest.fixture
def fixed_mtime_ns() -> int:
    # 2024-03-15 10:30:00 UTC
    return 1_710_498_600_000_000_000
