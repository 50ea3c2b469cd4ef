from dataclasses import dataclass
from typing import Dict, Union

from models import DuplicateKey, SourceEntry


@dataclass(frozen=True)
class FirstSeen:
    key: DuplicateKey


@dataclass(frozen=True)
class Duplicate:
    key: DuplicateKey
    first_rel_path: str


Observation = Union[FirstSeen, Duplicate]


class DuplicateIndex:
    """
    In-memory first-seen index keyed by (lowercased filename, mtime ns).

    The key is deliberately coarse: two files with the same name and the
    same modification tick are the same asset, whichever directory they
    live in. Entries must be observed in catalog order; the first one
    wins and every later match is reported as a Duplicate pointing back
    to it. Nothing is persisted between runs.
    """

    def __init__(self) -> None:
        self._first: Dict[DuplicateKey, str] = {}

    def observe(self, entry: SourceEntry) -> Observation:
        key = entry.duplicate_key
        first = self._first.get(key)
        if first is not None:
            return Duplicate(key=key, first_rel_path=first)
        self._first[key] = entry.rel_posix
        return FirstSeen(key=key)

    def first_occurrence(self, key: DuplicateKey) -> str:
        return self._first[key]

    def __contains__(self, key: DuplicateKey) -> bool:
        return key in self._first

    def __len__(self) -> int:
        return len(self._first)
