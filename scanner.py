import logging
import os
from pathlib import Path
from typing import Dict, Iterator, Optional

from models import Category, SourceEntry


IMAGE_EXTENSIONS = {
    ".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff",
    ".gif", ".heic", ".heif", ".webp",
}

VIDEO_EXTENSIONS = {
    ".mp4", ".mov", ".mkv", ".avi", ".m4v", ".wmv",
    ".webm", ".mts", ".m2ts", ".3gp", ".3g2",
}

_module_log = logging.getLogger(__name__)


def classify_file(file_path: Path) -> Category:
    """Return the Category of a file based on its extension."""
    ext = file_path.suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return Category.IMAGE
    if ext in VIDEO_EXTENSIONS:
        return Category.VIDEO
    return Category.UNSUPPORTED


def _created_ns(stat: os.stat_result) -> int:
    """
    Best available creation time in nanoseconds.

    Priority:
      1. st_birthtime : true creation time (macOS, BSD, Windows)
      2. st_ctime     : inode change time (Linux); used when it predates mtime
      3. st_mtime
    """
    birthtime = getattr(stat, "st_birthtime", None)
    if birthtime is not None and birthtime > 0:
        return int(birthtime * 1_000_000_000)
    if stat.st_ctime_ns <= stat.st_mtime_ns:
        return stat.st_ctime_ns
    return stat.st_mtime_ns


def _is_excluded(path: str, exclude: Optional[Path]) -> bool:
    return exclude is not None and os.path.abspath(path) == str(exclude)


def _iter_tree(
    root: Path,
    exclude: Optional[Path],
    logger: logging.Logger,
) -> Iterator[tuple]:
    """
    Depth-first walk with a stable order: sorted files of a directory,
    then its sorted subdirectories. Symlinked directories are not followed.
    """
    exclude = exclude.resolve() if exclude is not None else None

    def on_error(err: OSError) -> None:
        logger.warning("Cannot read directory %s: %s", err.filename, err.strerror)

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        dirnames[:] = sorted(
            d for d in dirnames
            if not os.path.islink(os.path.join(dirpath, d))
            and not _is_excluded(os.path.join(dirpath, d), exclude)
        )
        yield dirpath, dirnames, sorted(filenames)


def walk_files(
    root: Path,
    exclude: Optional[Path] = None,
    logger: logging.Logger = _module_log,
) -> Iterator[Path]:
    """Yield every regular, non-symlink file under root in deterministic order."""
    for dirpath, _, filenames in _iter_tree(root, exclude, logger):
        for name in filenames:
            file_path = Path(dirpath) / name
            if file_path.is_symlink() or not file_path.is_file():
                continue
            yield file_path


def scan_directory(
    source_path: Path,
    exclude: Optional[Path] = None,
    logger: logging.Logger = _module_log,
) -> Iterator[SourceEntry]:
    """
    Lazily yield a SourceEntry for every regular file under source_path,
    images, videos and unsupported files alike. Files that vanish or
    become unreadable between listing and stat are logged and skipped.
    """
    source_path = source_path.resolve()
    for file_path in walk_files(source_path, exclude=exclude, logger=logger):
        try:
            stat = file_path.stat()
        except OSError as e:
            logger.warning("Cannot stat %s: %s", file_path, e)
            continue

        yield SourceEntry(
            path=file_path,
            rel_path=file_path.relative_to(source_path),
            extension=file_path.suffix.lower(),
            modified_ns=stat.st_mtime_ns,
            created_ns=_created_ns(stat),
            size_bytes=stat.st_size,
            category=classify_file(file_path),
        )


def count_entries(
    source_path: Path,
    exclude: Optional[Path] = None,
    logger: logging.Logger = _module_log,
) -> Dict[Category, int]:
    """Count files per category; used for the zero-work check and progress sizing."""
    counts = {category: 0 for category in Category}
    for file_path in walk_files(source_path.resolve(), exclude=exclude, logger=logger):
        counts[classify_file(file_path)] += 1
    return counts


def mirror_directories(
    source_path: Path,
    dest_root: Path,
    logger: logging.Logger = _module_log,
    exclude: Optional[Path] = None,
) -> int:
    """
    Recreate every subdirectory of source_path under dest_root, whether or
    not it holds any media. Failures are logged as warnings; the caller
    falls back to creating parents lazily per file.
    Returns the number of directories that exist under dest_root afterwards.
    """
    source_path = source_path.resolve()
    created = 0
    for dirpath, dirnames, _ in _iter_tree(source_path, exclude, logger):
        rel = Path(dirpath).relative_to(source_path)
        for name in dirnames:
            target = dest_root / rel / name
            try:
                target.mkdir(parents=True, exist_ok=True)
                created += 1
            except OSError as e:
                logger.warning("Cannot create directory %s: %s", target, e)
    return created
