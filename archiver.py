#!/usr/bin/env python3
"""
media-archiver: Mirror a media folder into an archival copy. Images are
re-encoded to size-bounded JPEGs, videos are copied unchanged, and the
directory structure is preserved under a new root.

Usage:
    python archiver.py ~/Pictures/Trip
    python archiver.py ~/Pictures/Trip --target /Volumes/Backup/Trip --max-bytes 2M
"""

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from codec import CodecUnavailableError, detect_codec
from encoder import SizeBoundedEncoder
from models import DEFAULT_MAX_BYTES, TransferStats, validate_max_bytes
from pipeline import TransferPipeline
from run_log import close_run_log, open_run_log

LOG_FILENAME = "archive_log.txt"
DEST_SUFFIX = "_archive"


# ── Configuration helpers ─────────────────────────────────────────────────────

def parse_size(s: str) -> int:
    """Parse '1048576', '900k', '2M', '1.5MiB' into bytes (binary units)."""
    s = s.strip().lower().replace("ib", "").rstrip("b")
    mult = 1
    if s.endswith("k"):
        mult = 1024
        s = s[:-1]
    elif s.endswith("m"):
        mult = 1024**2
        s = s[:-1]
    elif s.endswith("g"):
        mult = 1024**3
        s = s[:-1]
    return int(float(s) * mult)


def _size_arg(value: str) -> int:
    try:
        return validate_max_bytes(parse_size(value))
    except (ValueError, OverflowError) as e:
        raise argparse.ArgumentTypeError(f"invalid byte budget {value!r}: {e}")


def default_target(source_path: Path) -> Path:
    return source_path.parent / f"{source_path.name}{DEST_SUFFIX}"


def check_source(source_path: Path) -> Path:
    """Raise if the source root is unusable; return it resolved."""
    source_path = source_path.expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Source path does not exist: {source_path}")
    if not source_path.is_dir():
        raise NotADirectoryError(f"Source path is not a directory: {source_path}")
    return source_path


# ── Core run ──────────────────────────────────────────────────────────────────

def run_archive(
    source_path: Path,
    target_root: Optional[Path] = None,
    max_bytes: int = DEFAULT_MAX_BYTES,
    log_path: Optional[Path] = None,
    codec=None,
    magick: Optional[str] = None,
    verbose: bool = False,
    use_progress: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> TransferStats:
    """
    Full archive pass for one source directory.

    Fatal preconditions (missing source, no codec, bad budget) raise before
    any file is touched. Everything after that is per-file and ends up in
    the returned stats.
    """
    source_path = check_source(source_path)
    validate_max_bytes(max_bytes)
    target_root = (target_root or default_target(source_path)).expanduser().resolve()
    if target_root == source_path:
        raise ValueError("Target must differ from the source directory")

    target_root.mkdir(parents=True, exist_ok=True)
    log_path = log_path or target_root / LOG_FILENAME
    logger = open_run_log(log_path, verbose=verbose)
    try:
        if codec is None:
            try:
                codec = detect_codec(magick)
            except CodecUnavailableError as e:
                logger.error("%s", e)
                raise
        logger.info(
            "Archiving %s -> %s (budget %s bytes, codec %r)",
            source_path, target_root, f"{max_bytes:,}", codec,
        )
        pipeline = TransferPipeline(
            source_root=source_path,
            dest_root=target_root,
            encoder=SizeBoundedEncoder(codec, logger=logger),
            logger=logger,
            max_bytes=max_bytes,
            log_path=log_path,
            use_progress=use_progress,
            cancel_event=cancel_event,
        )
        return pipeline.run()
    finally:
        close_run_log(logger)


# ── Output ────────────────────────────────────────────────────────────────────

def print_summary(stats: TransferStats, target_root: Path, log_path: Path) -> None:
    print("\n" + "=" * 44)
    print("  Media Archive Summary")
    print("=" * 44)
    print(f"\nSource: {stats.source_path}")
    print(f"Target: {target_root}")
    print(f"  Converted   : {stats.converted:>6,} images")
    print(f"  Copied      : {stats.copied:>6,} videos")
    print(f"  Duplicates  : {stats.skipped_duplicate:>6,} files (skipped)")
    print(f"  Unsupported : {stats.unsupported:>6,} files (skipped)")
    print(f"  Errors      : {stats.errored:>6,} files")
    if stats.errors:
        show = stats.errors[:20]
        for path, msg in show:
            print(f"    ! {path}: {msg}")
        if len(stats.errors) > 20:
            print(f"    ... and {len(stats.errors) - 20} more errors")
    print(f"\nLog     : {log_path}")
    print()


# ── CLI ───────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archiver.py",
        description=(
            "Mirror a media folder into an archival copy: images become JPEGs "
            "no larger than the byte budget, videos are copied unchanged, and "
            "duplicates (same filename and modification time) are skipped."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python archiver.py ~/Pictures/Trip\n"
            "  python archiver.py ~/Pictures/Trip --max-bytes 2M\n"
            "  python archiver.py /Volumes/SD1 --target ~/Archive/SD1 --no-progress\n"
        ),
    )
    parser.add_argument(
        "source",
        metavar="SOURCE",
        help="Source directory to archive.",
    )
    parser.add_argument(
        "--target",
        metavar="PATH",
        default=None,
        help=f"Destination root (default: SOURCE{DEST_SUFFIX} next to the source).",
    )
    parser.add_argument(
        "--max-bytes",
        metavar="SIZE",
        type=_size_arg,
        default=DEFAULT_MAX_BYTES,
        help="Byte budget per image, e.g. 1048576, 900k, 2M (default: 1 MiB).",
    )
    parser.add_argument(
        "--log-file",
        metavar="PATH",
        default=None,
        help=f"Text log location (default: TARGET/{LOG_FILENAME}).",
    )
    parser.add_argument(
        "--magick",
        metavar="BIN",
        default=None,
        help="ImageMagick binary to use (default: magick, then convert).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Include debug records (ladder steps, codec retries).",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable the progress bar (useful when piping output to log files).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        source_path = check_source(Path(args.source))
    except OSError as e:
        parser.error(str(e))

    target_root = (
        Path(args.target).expanduser().resolve() if args.target
        else default_target(source_path)
    )
    log_path = (
        Path(args.log_file).expanduser().resolve() if args.log_file
        else target_root / LOG_FILENAME
    )

    cancel_event = threading.Event()

    def on_interrupt(signum, frame) -> None:
        cancel_event.set()
        print("\nInterrupted; finishing the current file ...", file=sys.stderr)

    previous_handler = signal.signal(signal.SIGINT, on_interrupt)
    try:
        stats = run_archive(
            source_path,
            target_root=target_root,
            max_bytes=args.max_bytes,
            log_path=log_path,
            magick=args.magick,
            verbose=args.verbose,
            use_progress=not args.no_progress,
            cancel_event=cancel_event,
        )
    except (CodecUnavailableError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print_summary(stats, target_root, log_path)
    return 130 if cancel_event.is_set() else 0


if __name__ == "__main__":
    sys.exit(main())
