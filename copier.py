import logging
import os
import platform
import shutil
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Set

from models import Category, SourceEntry

IMAGE_OUTPUT_SUFFIX = ".jpeg"

MAX_COLLISION_ATTEMPTS = 999

_module_log = logging.getLogger(__name__)


def build_destination_path(dest_root: Path, entry: SourceEntry) -> Path:
    """
    Mirror the entry's relative path under dest_root. Images get their
    extension forced to .jpeg; everything else keeps its name.
    Example: src/2024/IMG_0042.PNG  ->  dest/2024/IMG_0042.jpeg
    """
    rel = entry.rel_path
    if entry.category is Category.IMAGE:
        rel = rel.with_suffix(IMAGE_OUTPUT_SUFFIX)
    return dest_root / rel


def resolve_collision(dest_path: Path, claimed: Set[Path]) -> Path:
    """
    If dest_path was already written earlier in this run (e.g. photo.png and
    photo.jpg both map to photo.jpeg), append _2, _3, ... to the stem until
    an unclaimed path is found. Files left over from earlier runs are not
    claims; they get overwritten.
    Raises RuntimeError after MAX_COLLISION_ATTEMPTS.
    """
    if dest_path not in claimed:
        return dest_path

    stem = dest_path.stem
    suffix = dest_path.suffix
    parent = dest_path.parent

    for counter in range(2, MAX_COLLISION_ATTEMPTS + 2):
        candidate = parent / f"{stem}_{counter}{suffix}"
        if candidate not in claimed:
            return candidate

    raise RuntimeError(
        f"Could not resolve filename collision after {MAX_COLLISION_ATTEMPTS} "
        f"attempts for: {dest_path}"
    )


def ensure_parent(dest_path: Path) -> None:
    """Lazy fallback for directories the skeleton pass could not create."""
    dest_path.parent.mkdir(parents=True, exist_ok=True)


def copy_file(source_path: Path, dest_path: Path) -> int:
    """
    Byte-for-byte copy (timestamps included), creating parents as needed.
    Returns the number of bytes written.
    """
    ensure_parent(dest_path)
    shutil.copy2(source_path, dest_path)
    return dest_path.stat().st_size


def _apply_birthtime(path: Path, created_ns: int, logger: logging.Logger) -> None:
    """Set creation time: SetFile on macOS, win32_setctime on Windows."""
    system = platform.system()
    if system == "Windows":
        from win32_setctime import setctime

        setctime(path, created_ns / 1_000_000_000)
        return
    if system != "Darwin":
        return
    setfile = shutil.which("SetFile")
    if not setfile:
        logger.debug("SetFile unavailable; skipping creation time for %s", path)
        return
    dt = datetime.fromtimestamp(created_ns / 1_000_000_000, tz=timezone.utc).astimezone()
    proc = subprocess.run(
        [setfile, "-d", dt.strftime("%m/%d/%Y %H:%M:%S"), str(path)],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    if proc.returncode != 0:
        raise OSError(f"SetFile exited with {proc.returncode} for {path}")


def preserve_timestamps(
    dest_path: Path,
    entry: SourceEntry,
    logger: logging.Logger = _module_log,
) -> bool:
    """
    Give dest_path the source entry's modification and creation times.

    Timestamps are cosmetic: this is the one place their failures are
    caught. Returns False (and logs at debug) instead of raising.
    """
    try:
        os.utime(dest_path, ns=(entry.modified_ns, entry.modified_ns))
        _apply_birthtime(dest_path, entry.created_ns, logger)
    except (OSError, OverflowError, ValueError) as e:
        logger.debug("Could not preserve timestamps on %s: %s", dest_path, e)
        return False
    return True
