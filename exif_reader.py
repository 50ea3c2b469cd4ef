from pathlib import Path
from typing import Optional

import exifread

ORIENTATION_TAG = "Image Orientation"

# EXIF orientation values 1..8; 1 means "as stored"
ORIENTATION_NAMES = {
    1: "normal",
    2: "mirrored horizontal",
    3: "rotated 180",
    4: "mirrored vertical",
    5: "mirrored horizontal, rotated 270 CW",
    6: "rotated 90 CW",
    7: "mirrored horizontal, rotated 90 CW",
    8: "rotated 270 CW",
}


def get_orientation(file_path: Path) -> Optional[int]:
    """
    Return the EXIF orientation (1-8) of an image, or None when the file
    has no readable orientation tag. Purely diagnostic: the codec applies
    the rotation itself via -auto-orient.
    """
    try:
        with open(file_path, "rb") as f:
            tags = exifread.process_file(f, stop_tag="Orientation", details=False)
    except Exception:
        return None

    tag = tags.get(ORIENTATION_TAG)
    if tag is None:
        return None
    try:
        value = int(tag.values[0])
    except (AttributeError, IndexError, TypeError, ValueError):
        return None
    return value if value in ORIENTATION_NAMES else None


def describe_orientation(value: Optional[int]) -> str:
    if value is None:
        return "none"
    return ORIENTATION_NAMES.get(value, "unknown")


def needs_rotation(value: Optional[int]) -> bool:
    return value is not None and value != 1
