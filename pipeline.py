import logging
import threading
from contextlib import nullcontext
from pathlib import Path
from typing import Optional, Set

from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from copier import (
    build_destination_path,
    copy_file,
    ensure_parent,
    preserve_timestamps,
    resolve_collision,
)
from duplicates import Duplicate, DuplicateIndex
from encoder import SizeBoundedEncoder
from exif_reader import describe_orientation, needs_rotation
from models import (
    DEFAULT_MAX_BYTES,
    Category,
    Converted,
    SourceEntry,
    TransferStats,
    validate_max_bytes,
)
from run_log import OK, SKIP
from scanner import count_entries, mirror_directories, scan_directory


class TransferPipeline:
    """
    One archival pass: catalog the source tree, drop duplicates, convert
    images, copy videos, count everything.

    Entries are processed one at a time in catalog order, which is the
    order "first seen" duplicates are decided in. A failure on
    one entry is recorded and the pass moves on to the next.
    """

    def __init__(
        self,
        source_root: Path,
        dest_root: Path,
        encoder: SizeBoundedEncoder,
        logger: logging.Logger,
        max_bytes: int = DEFAULT_MAX_BYTES,
        log_path: Optional[Path] = None,
        use_progress: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.source_root = source_root.resolve()
        self.dest_root = dest_root.resolve()
        self.encoder = encoder
        self.log = logger
        self.max_bytes = validate_max_bytes(max_bytes)
        self.log_path = log_path
        self.use_progress = use_progress
        self.cancel_event = cancel_event

        self.stats = TransferStats(source_path=str(self.source_root))
        self.duplicates = DuplicateIndex()
        self._claimed: Set[Path] = set()
        self.cancelled = False

    # ── Driver ────────────────────────────────────────────────────────────────

    def run(self) -> TransferStats:
        exclude = self._exclude_dir()
        counts = count_entries(self.source_root, exclude=exclude, logger=self.log)
        qualifying = counts[Category.IMAGE] + counts[Category.VIDEO]

        self.log.info(
            "Found %d image(s), %d video(s), %d other file(s) in %s",
            counts[Category.IMAGE], counts[Category.VIDEO],
            counts[Category.UNSUPPORTED], self.source_root,
        )

        if qualifying == 0:
            self.log.warning("No images or videos found in %s; nothing to do", self.source_root)
            self.stats.unsupported = counts[Category.UNSUPPORTED]
            return self._finish()

        mirror_directories(self.source_root, self.dest_root, logger=self.log, exclude=exclude)

        # Console records are written through tqdm while the bar is shown.
        redirect = (
            logging_redirect_tqdm(loggers=[self.log]) if self.use_progress else nullcontext()
        )
        with redirect, tqdm(
            total=qualifying,
            unit="file",
            desc=self.source_root.name,
            ncols=80,
            disable=not self.use_progress,
        ) as bar:
            for entry in scan_directory(self.source_root, exclude=exclude, logger=self.log):
                if self.cancel_event is not None and self.cancel_event.is_set():
                    self.cancelled = True
                    self.log.warning("Cancelled; stopping before %s", entry.rel_posix)
                    break

                self.process_entry(entry)
                if entry.category is not Category.UNSUPPORTED:
                    bar.update(1)
                    bar.set_postfix(
                        ok=self.stats.converted + self.stats.copied,
                        err=self.stats.errored,
                    )

        return self._finish()

    def process_entry(self, entry: SourceEntry) -> None:
        """Handle one catalog entry; never raises."""
        try:
            if entry.category is Category.UNSUPPORTED:
                self.stats.increment("unsupported")
                self.log.warning("Unsupported file type, not archived: %s", entry.rel_posix)
                return

            observation = self.duplicates.observe(entry)
            if isinstance(observation, Duplicate):
                self.stats.increment("skipped_duplicate")
                self.log.log(
                    SKIP, "Duplicate of %s: %s", observation.first_rel_path, entry.rel_posix
                )
                return

            if entry.category is Category.IMAGE:
                self._convert_image(entry)
            else:
                self._copy_video(entry)

        except Exception as e:
            self.stats.record_error(entry.rel_posix, str(e))
            self.log.error("Failed %s: %s", entry.rel_posix, e)

    # ── Per-category work ─────────────────────────────────────────────────────

    def _claim_destination(self, entry: SourceEntry) -> Path:
        wanted = build_destination_path(self.dest_root, entry)
        dest = resolve_collision(wanted, self._claimed)
        if dest != wanted:
            self.log.warning(
                "Renamed %s -> %s; %s was already written this run",
                entry.rel_posix,
                dest.relative_to(self.dest_root).as_posix(),
                wanted.relative_to(self.dest_root).as_posix(),
            )
        self._claimed.add(dest)
        ensure_parent(dest)
        return dest

    def _convert_image(self, entry: SourceEntry) -> None:
        dest = self._claim_destination(entry)
        outcome = self.encoder.encode(entry.path, dest, self.max_bytes)

        if not isinstance(outcome, Converted):
            self.stats.record_error(entry.rel_posix, outcome.reason)
            self.log.error(
                "%s: %s after %d attempt(s)", entry.rel_posix, outcome.reason, outcome.attempts
            )
            return

        preserve_timestamps(dest, entry, logger=self.log)
        self.stats.increment("converted")
        self.log.log(
            OK,
            "Converted %s -> %s (%s bytes, scale %d%%, %d attempt(s)%s%s)",
            entry.rel_posix,
            dest.relative_to(self.dest_root).as_posix(),
            f"{outcome.bytes_out:,}",
            outcome.scale,
            outcome.attempts,
            "" if outcome.alpha_flattened else ", alpha kept",
            f", auto-oriented: {describe_orientation(outcome.orientation)}"
            if needs_rotation(outcome.orientation) else "",
        )
        if outcome.over_budget:
            self.log.warning(
                "%s: %s (%s bytes > %s budget)",
                entry.rel_posix, outcome.warning,
                f"{outcome.bytes_out:,}", f"{self.max_bytes:,}",
            )

    def _copy_video(self, entry: SourceEntry) -> None:
        dest = self._claim_destination(entry)
        size = copy_file(entry.path, dest)
        preserve_timestamps(dest, entry, logger=self.log)
        self.stats.increment("copied")
        self.log.log(OK, "Copied %s (%s bytes)", entry.rel_posix, f"{size:,}")

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _exclude_dir(self) -> Optional[Path]:
        """The destination root, when it lives inside the source tree."""
        try:
            self.dest_root.relative_to(self.source_root)
        except ValueError:
            return None
        return self.dest_root

    def _finish(self) -> TransferStats:
        stats = self.stats.finalize()
        self.log.info(
            "Summary: converted=%d copied_videos=%d duplicates=%d unsupported=%d "
            "errors=%d log=%s",
            stats.converted, stats.copied, stats.skipped_duplicate,
            stats.unsupported, stats.errored,
            self.log_path if self.log_path is not None else "-",
        )
        return stats
