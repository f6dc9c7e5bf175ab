from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

# Earliest timestamp the zip format can represent; used for entries created here
DEFAULT_DATE_TIME: Tuple[int, int, int, int, int, int] = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True)
class ArchiveEntry:
    """One path/content/directory record of a module archive.

    Entries are immutable; an update replaces the entry wholesale.
    Directory entries never carry content.
    """

    path: str
    content: bytes = field(default=b"", repr=False)
    is_directory: bool = False
    date_time: Tuple[int, int, int, int, int, int] = DEFAULT_DATE_TIME

    def __post_init__(self):
        if not self.path:
            raise ValueError("archive entry path must not be empty")
        if self.is_directory and self.content:
            object.__setattr__(self, "content", b"")
        elif not isinstance(self.content, bytes):
            object.__setattr__(self, "content", bytes(self.content))

    @classmethod
    def file(cls, path: str, content: bytes) -> "ArchiveEntry":
        return cls(path=path, content=content, is_directory=False)

    @classmethod
    def directory(cls, path: str) -> "ArchiveEntry":
        return cls(path=path, content=b"", is_directory=True)

    @property
    def size(self) -> int:
        return len(self.content)
