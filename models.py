from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple, Union

DEFAULT_MAX_BYTES = 1_048_576  # 1 MiB


class Category(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    UNSUPPORTED = "unsupported"


class DuplicateKey(NamedTuple):
    name: str            # lowercased filename
    modified_ns: int


def _ns_to_utc(ns: int) -> datetime:
    return datetime.fromtimestamp(ns / 1_000_000_000, tz=timezone.utc)


@dataclass(frozen=True)
class SourceEntry:
    path: Path               # absolute
    rel_path: Path           # relative to the source root
    extension: str           # lowercase, e.g. ".jpg"
    modified_ns: int
    created_ns: int
    size_bytes: int
    category: Category

    @property
    def modified(self) -> datetime:
        return _ns_to_utc(self.modified_ns)

    @property
    def created(self) -> datetime:
        return _ns_to_utc(self.created_ns)

    @property
    def duplicate_key(self) -> DuplicateKey:
        return DuplicateKey(self.path.name.lower(), self.modified_ns)

    @property
    def rel_posix(self) -> str:
        return self.rel_path.as_posix()


@dataclass(frozen=True)
class ConversionRequest:
    source: Path
    destination: Path
    max_bytes: int = DEFAULT_MAX_BYTES

    def __post_init__(self) -> None:
        validate_max_bytes(self.max_bytes)


@dataclass(frozen=True)
class Converted:
    bytes_out: int
    scale: int               # percent of original pixel dimensions
    warning: Optional[str] = None
    attempts: int = 1
    alpha_flattened: bool = True
    orientation: Optional[int] = None

    @property
    def over_budget(self) -> bool:
        return self.warning is not None


@dataclass(frozen=True)
class Failed:
    reason: str
    attempts: int = 0


ConversionOutcome = Union[Converted, Failed]


STAT_FIELDS = ("converted", "copied", "skipped_duplicate", "unsupported", "errored")


@dataclass
class TransferStats:
    source_path: str
    converted: int = 0
    copied: int = 0
    skipped_duplicate: int = 0
    unsupported: int = 0
    errored: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)
    finalized: bool = False

    def increment(self, name: str) -> None:
        if self.finalized:
            raise RuntimeError("TransferStats is finalized")
        if name not in STAT_FIELDS:
            raise KeyError(name)
        setattr(self, name, getattr(self, name) + 1)

    def record_error(self, rel_path: str, message: str) -> None:
        self.increment("errored")
        self.errors.append((rel_path, message))

    def finalize(self) -> "TransferStats":
        self.finalized = True
        return self

    @property
    def total(self) -> int:
        return sum(getattr(self, name) for name in STAT_FIELDS)

    def to_dict(self) -> dict:
        return {
            "source_path": self.source_path,
            "converted": self.converted,
            "copied": self.copied,
            "skipped_duplicate": self.skipped_duplicate,
            "unsupported": self.unsupported,
            "errored": self.errored,
        }


def validate_max_bytes(max_bytes: int) -> int:
    """Return max_bytes unchanged or raise ValueError if it is not a positive int."""
    if isinstance(max_bytes, bool) or not isinstance(max_bytes, int) or max_bytes <= 0:
        raise ValueError(f"Byte budget must be a positive integer, got {max_bytes!r}")
    return max_bytes
