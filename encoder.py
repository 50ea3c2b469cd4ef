"""
Size-bounded JPEG encoding on top of the external codec.

The encoder walks a descending resize ladder. Each rung is tried with
alpha flattened onto white and, if the codec rejects that, once more
without the alpha flags. The first rung whose output fits the budget
wins. When no rung fits, the smallest output produced is kept and
flagged rather than thrown away.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Tuple

from codec import build_directives
from exif_reader import get_orientation
from models import (
    ConversionOutcome,
    ConversionRequest,
    Converted,
    Failed,
    validate_max_bytes,
)

SCALE_LADDER = (100, 90, 80, 70, 60, 50)

TARGET_NOT_REACHED = "target not reached, best-effort saved"
CONVERSION_FAILED = "conversion failed"

PARTIAL_SUFFIX = ".part"
KEPT_SUFFIX = ".kept.part"

_module_log = logging.getLogger(__name__)


def partial_path_for(dest: Path) -> Path:
    return dest.with_name(dest.name + PARTIAL_SUFFIX)


def kept_path_for(dest: Path) -> Path:
    return dest.with_name(dest.name + KEPT_SUFFIX)


def _remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class SizeBoundedEncoder:
    """
    Stateless between calls apart from the codec handle and ladder.

    `codec` is anything with `encode(source, dest, directives) -> int`
    returning a process exit status (see codec.MagickCodec).
    """

    def __init__(
        self,
        codec,
        ladder: Sequence[int] = SCALE_LADDER,
        logger: logging.Logger = _module_log,
    ) -> None:
        if not ladder:
            raise ValueError("Scale ladder must not be empty")
        self.codec = codec
        self.ladder = tuple(ladder)
        self.log = logger

    def encode_request(self, request: ConversionRequest) -> ConversionOutcome:
        return self.encode(request.source, request.destination, request.max_bytes)

    def encode(self, source: Path, dest: Path, max_bytes: int) -> ConversionOutcome:
        validate_max_bytes(max_bytes)
        partial = partial_path_for(dest)
        orientation = get_orientation(source)

        attempts = 0
        produced: Optional[Tuple[int, int, bool]] = None  # (size, scale, alpha_flattened)

        try:
            for scale in self.ladder:
                result, used = self._attempt_step(source, dest, partial, scale, max_bytes)
                attempts += used
                if result is None:
                    self.log.debug("No output for %s at %d%%", source, scale)
                    continue

                size, alpha_flattened = result
                produced = (size, scale, alpha_flattened)
                if size <= max_bytes:
                    return Converted(
                        bytes_out=size,
                        scale=scale,
                        attempts=attempts,
                        alpha_flattened=alpha_flattened,
                        orientation=orientation,
                    )
                self.log.debug(
                    "%s at %d%% is %d bytes (budget %d)", source, scale, size, max_bytes
                )
        finally:
            _remove(partial)

        if produced is None:
            # A failed conversion must not leave an earlier run's output behind.
            _remove(dest)
            return Failed(reason=CONVERSION_FAILED, attempts=attempts)

        size, scale, alpha_flattened = produced
        return Converted(
            bytes_out=size,
            scale=scale,
            warning=TARGET_NOT_REACHED,
            attempts=attempts,
            alpha_flattened=alpha_flattened,
            orientation=orientation,
        )

    def _attempt_step(
        self,
        source: Path,
        dest: Path,
        partial: Path,
        scale: int,
        max_bytes: int,
    ) -> Tuple[Optional[Tuple[int, bool]], int]:
        """
        Run one ladder rung: alpha-flattening first, then without the alpha
        flags if the codec failed or wrote nothing. A produced file replaces
        dest atomically. Returns ((size, alpha_flattened) or None, attempts).

        A file left by a failed flattening attempt is set aside and used
        only when the retry writes nothing.
        """
        kept = kept_path_for(dest)
        attempts = 0
        try:
            for flatten_alpha in (True, False):
                _remove(partial)
                status = self.codec.encode(
                    source, partial, build_directives(scale, max_bytes, flatten_alpha)
                )
                attempts += 1
                produced = partial.is_file()

                # The flattening attempt must succeed outright; the structural
                # fallback is judged by output presence alone.
                if flatten_alpha and (status != 0 or not produced):
                    if produced:
                        os.replace(partial, kept)
                    self.log.debug(
                        "Codec exit %d for %s at %d%%; retrying without alpha flags",
                        status, source, scale,
                    )
                    continue
                if produced:
                    os.replace(partial, dest)
                    return (dest.stat().st_size, flatten_alpha), attempts

            if kept.is_file():
                self.log.debug(
                    "Retry for %s at %d%% wrote nothing; using the flattened output",
                    source, scale,
                )
                os.replace(kept, dest)
                return (dest.stat().st_size, True), attempts
            return None, attempts
        finally:
            _remove(kept)
