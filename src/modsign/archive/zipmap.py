from __future__ import annotations

import io
import os
import stat
import tempfile
import zipfile
import zlib
from typing import Dict, Iterator, List, Optional

from ..errors import ArchiveReadError, ArchiveWriteError
from .entry import DEFAULT_DATE_TIME, ArchiveEntry

_MSDOS_DIRECTORY = 0x10
_UNIX_SYSTEM = 3
_FILE_MODE = stat.S_IFREG | 0o644
_DIR_MODE = stat.S_IFDIR | 0o755

# Errors zipfile/zlib raise for malformed or unsupported container data
_READ_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    NotImplementedError,
    RuntimeError,
    EOFError,
    ValueError,
    zlib.error,
)


def _is_directory(info: zipfile.ZipInfo) -> bool:
    mode = info.external_attr >> 16
    if info.create_system == _UNIX_SYSTEM and stat.S_IFMT(mode):
        return stat.S_ISDIR(mode)
    if info.external_attr & _MSDOS_DIRECTORY:
        return True
    # java.util.zip and friends write no attributes; the record name is all there is
    return info.is_dir()


def _target_mode(path: str) -> int:
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _zip_info(entry: ArchiveEntry) -> zipfile.ZipInfo:
    name = entry.path
    if entry.is_directory and not name.endswith("/"):
        name += "/"
    date_time = entry.date_time if entry.date_time[0] >= 1980 else DEFAULT_DATE_TIME
    info = zipfile.ZipInfo(filename=name, date_time=date_time)
    info.create_system = _UNIX_SYSTEM
    if entry.is_directory:
        info.compress_type = zipfile.ZIP_STORED
        info.external_attr = (_DIR_MODE << 16) | _MSDOS_DIRECTORY
    else:
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = _FILE_MODE << 16
    return info


class Archive:
    """Mutable mapping of entry path -> ``ArchiveEntry``."""

    def __init__(self, entries: Optional[List[ArchiveEntry]] = None):
        self._entries: Dict[str, ArchiveEntry] = {}
        for entry in entries or ():
            self.put(entry.path, entry)

    @classmethod
    def load(cls, data: bytes) -> "Archive":
        """Parse zip bytes; raises ArchiveReadError on malformed container data."""
        archive = cls()
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                for info in zf.infolist():
                    directory = _is_directory(info)
                    content = b"" if directory else zf.read(info)
                    archive.put(
                        info.filename,
                        ArchiveEntry(
                            path=info.filename,
                            content=content,
                            is_directory=directory,
                            date_time=info.date_time,
                        ),
                    )
        except _READ_ERRORS as exc:
            raise ArchiveReadError(f"invalid module archive: {exc}") from exc
        return archive

    @classmethod
    def from_file(cls, path) -> "Archive":
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            raise ArchiveReadError(f"cannot read module archive {path}: {exc}") from exc
        return cls.load(data)

    def get(self, path: str) -> Optional[ArchiveEntry]:
        return self._entries.get(path)

    def put(self, path: str, entry: ArchiveEntry) -> None:
        """Insert or replace the entry at ``path``. Directory paths should end with "/"."""
        if entry.path != path:
            entry = ArchiveEntry(
                path=path,
                content=entry.content,
                is_directory=entry.is_directory,
                date_time=entry.date_time,
            )
        self._entries[path] = entry

    def put_bytes(self, path: str, data: bytes) -> ArchiveEntry:
        entry = ArchiveEntry.file(path, data)
        self._entries[path] = entry
        return entry

    def remove(self, path: str) -> Optional[ArchiveEntry]:
        return self._entries.pop(path, None)

    def contains_path(self, path: str) -> bool:
        return path in self._entries

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    def paths(self) -> List[str]:
        return list(self._entries)

    def entries(self) -> List[ArchiveEntry]:
        return list(self._entries.values())

    def serialize(self) -> bytes:
        buf = io.BytesIO()
        try:
            with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for entry in self._entries.values():
                    zf.writestr(_zip_info(entry), entry.content)
        except OSError as exc:
            raise ArchiveWriteError(f"cannot serialize module archive: {exc}") from exc
        return buf.getvalue()

    def write_to_file(self, path) -> None:
        """Serialize and atomically replace ``path`` with the result.

        The archive is written to a temp file next to the destination and
        renamed into place, so a failure never leaves a partial file at ``path``.
        """
        data = self.serialize()
        path = os.fspath(path)
        directory = os.path.dirname(os.path.abspath(path))
        tmp = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".modsign.", suffix=".tmp", dir=directory)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, _target_mode(path))
            os.replace(tmp, path)
            tmp = None
        except OSError as exc:
            raise ArchiveWriteError(f"cannot write module archive {path}: {exc}") from exc
        finally:
            if tmp is not None:
                try:
                    os.remove(tmp)
                except OSError:
                    pass
