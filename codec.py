"""
Boundary to the external image codec (ImageMagick).

Every encode is one blocking subprocess. Only the exit status and the
presence of the output file matter to callers; the tool's textual output
(corrupt-marker warnings, profile complaints and the like) is discarded.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

MIB = 1024 * 1024
KIB = 1024

IS_WINDOWS = os.name == "nt"

CHROMA_SUBSAMPLING = "4:2:0"
INTERLACE_MODE = "Plane"

ALPHA_FLATTEN_DIRECTIVES = ["-background", "white", "-alpha", "remove", "-alpha", "off"]


class CodecUnavailableError(RuntimeError):
    """No usable ImageMagick binary could be found."""


def format_extent(max_bytes: int) -> str:
    """
    Render a byte budget the way ImageMagick's jpeg:extent expects:
    whole megabytes or kilobytes when evenly divisible, raw bytes otherwise.
    """
    if max_bytes % MIB == 0:
        return f"{max_bytes // MIB}MB"
    if max_bytes % KIB == 0:
        return f"{max_bytes // KIB}KB"
    return str(max_bytes)


def build_directives(scale: int, max_bytes: int, flatten_alpha: bool = True) -> List[str]:
    """Ordered transformation directives for one encode attempt."""
    directives = [
        "-auto-orient",
        "-strip",
        "-colorspace", "sRGB",
        "-sampling-factor", CHROMA_SUBSAMPLING,
        "-interlace", INTERLACE_MODE,
    ]
    if flatten_alpha:
        directives += ALPHA_FLATTEN_DIRECTIVES
    directives += [
        "-resize", f"{scale}%",
        "-define", f"jpeg:extent={format_extent(max_bytes)}",
    ]
    return directives


class MagickCodec:
    """Runs `magick` (or legacy `convert`) with output text suppressed."""

    def __init__(self, command: Sequence[str]) -> None:
        self.command = list(command)

    def __repr__(self) -> str:
        return f"MagickCodec({self.command!r})"

    def build_command(self, source: Path, dest: Path, directives: Sequence[str]) -> List[str]:
        # [0] keeps multi-frame sources (animated GIF, multi-page TIFF)
        # down to a single output file.
        return (
            self.command
            + ["-quiet", f"{source}[0]"]
            + list(directives)
            + [f"JPEG:{dest}"]
        )

    def encode(self, source: Path, dest: Path, directives: Sequence[str]) -> int:
        """Run one encode and return the process exit status."""
        proc = subprocess.run(
            self.build_command(source, dest, directives),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
        return proc.returncode


def detect_codec(explicit: Optional[str] = None) -> MagickCodec:
    """
    Locate ImageMagick. Tries an explicit binary first, then `magick`
    (IM7), then `convert` (IM6). On Windows `convert` is skipped because
    it resolves to the system's filesystem conversion tool.
    Raises CodecUnavailableError when nothing usable is found.
    """
    if explicit:
        found = shutil.which(explicit)
        if not found:
            raise CodecUnavailableError(f"ImageMagick binary not found: {explicit}")
        return MagickCodec([found])

    magick = shutil.which("magick")
    if magick:
        return MagickCodec([magick])

    if not IS_WINDOWS:
        convert = shutil.which("convert")
        if convert:
            return MagickCodec([convert])

    raise CodecUnavailableError(
        "ImageMagick not found (need `magick`, or `convert` on non-Windows systems)"
    )
