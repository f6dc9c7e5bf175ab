import io
import os
import stat
import struct
import zipfile
from pathlib import Path

import pytest

from modsign.archive.entry import ArchiveEntry, DEFAULT_DATE_TIME
from modsign.archive.zipmap import Archive
from modsign.errors import ArchiveReadError, ArchiveWriteError


def _zip(entries, compression=zipfile.ZIP_DEFLATED) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


def test_load_reads_files_and_directories_in_order():
    data = _zip([("a.txt", b"hello"), ("dir/", b""), ("dir/b.txt", b"")])
    archive = Archive.load(data)
    assert archive.paths() == ["a.txt", "dir/", "dir/b.txt"]
    assert archive.get("a.txt").content == b"hello"
    assert archive.get("dir/").is_directory is True
    assert archive.get("dir/b.txt").is_directory is False
    assert archive.get("dir/b.txt").content == b""


def test_directory_flag_comes_from_attributes():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        info = zipfile.ZipInfo("assets")
        info.external_attr = 0x10  # MS-DOS directory bit, no trailing slash
        zf.writestr(info, b"")
    archive = Archive.load(buf.getvalue())
    assert archive.get("assets").is_directory is True


def test_unix_file_mode_wins_over_trailing_slash():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        info = zipfile.ZipInfo("data/")
        info.create_system = 3
        info.external_attr = (stat.S_IFREG | 0o644) << 16
        zf.writestr(info, b"payload")
    entry = Archive.load(buf.getvalue()).get("data/")
    assert entry.is_directory is False
    assert entry.content == b"payload"


def test_file_with_trailing_slash_survives_roundtrip():
    archive = Archive()
    archive.put_bytes("x/", b"data")
    reloaded = Archive.load(archive.serialize())
    assert reloaded.get("x/").is_directory is False
    assert reloaded.get("x/").content == b"data"


def test_serialize_preserves_content_and_order():
    archive = Archive()
    archive.put("z.bin", ArchiveEntry.file("z.bin", bytes(range(256)) * 4))
    archive.put("empty.txt", ArchiveEntry.file("empty.txt", b""))
    archive.put("lib/", ArchiveEntry.directory("lib/"))
    archive.put("crlf.txt", ArchiveEntry.file("crlf.txt", b"a\r\nb\n"))

    reloaded = Archive.load(archive.serialize())
    assert reloaded.paths() == ["z.bin", "empty.txt", "lib/", "crlf.txt"]
    assert reloaded.get("z.bin").content == bytes(range(256)) * 4
    assert reloaded.get("empty.txt").content == b""
    assert reloaded.get("lib/").is_directory
    assert reloaded.get("crlf.txt").content == b"a\r\nb\n"


def test_directory_written_with_trailing_separator():
    archive = Archive([ArchiveEntry.directory("conf")])
    with zipfile.ZipFile(io.BytesIO(archive.serialize())) as zf:
        assert zf.namelist() == ["conf/"]
        assert zf.getinfo("conf/").file_size == 0


def test_serialize_is_reproducible():
    archive = Archive([ArchiveEntry.file("a.txt", b"x"), ArchiveEntry.directory("d/")])
    assert archive.serialize() == archive.serialize()
    assert Archive.load(archive.serialize()).get("a.txt").date_time == DEFAULT_DATE_TIME


def test_put_overwrites_in_place():
    archive = Archive.load(_zip([("a", b"1"), ("b", b"2")]))
    archive.put("a", ArchiveEntry.file("a", b"3"))
    assert archive.paths() == ["a", "b"]
    assert archive.get("a").content == b"3"


def test_put_rewrites_entry_path():
    archive = Archive()
    archive.put("renamed.txt", ArchiveEntry.file("original.txt", b"x"))
    assert archive.get("renamed.txt").path == "renamed.txt"


def test_mapping_operations():
    archive = Archive()
    archive.put_bytes("x", b"1")
    assert archive.contains_path("x")
    assert "x" in archive
    assert len(archive) == 1
    assert list(archive) == ["x"]
    removed = archive.remove("x")
    assert removed.content == b"1"
    assert archive.remove("x") is None
    assert archive.get("x") is None
    assert not archive.contains_path("x")


def test_empty_archive_roundtrip():
    assert len(Archive.load(Archive().serialize())) == 0


@pytest.mark.parametrize("data", [b"", b"not a zip at all", b"PK\x03\x04garbage"])
def test_load_rejects_garbage(data):
    with pytest.raises(ArchiveReadError):
        Archive.load(data)


def test_load_rejects_truncated_stream():
    data = _zip([("a.txt", b"hello" * 100)])
    with pytest.raises(ArchiveReadError):
        Archive.load(data[: len(data) // 2])


def test_load_rejects_bad_crc():
    data = bytearray(_zip([("a.txt", b"hello world")], compression=zipfile.ZIP_STORED))
    idx = data.index(b"hello world")
    data[idx] ^= 0x01
    with pytest.raises(ArchiveReadError):
        Archive.load(bytes(data))


def test_load_rejects_unsupported_compression():
    data = bytearray(_zip([("a.txt", b"hello")], compression=zipfile.ZIP_STORED))
    local = data.index(b"PK\x03\x04")
    central = data.index(b"PK\x01\x02")
    struct.pack_into("<H", data, local + 8, 99)
    struct.pack_into("<H", data, central + 10, 99)
    with pytest.raises(ArchiveReadError):
        Archive.load(bytes(data))


def test_load_rejects_encrypted_entry():
    data = bytearray(_zip([("a.txt", b"secret")], compression=zipfile.ZIP_STORED))
    local = data.index(b"PK\x03\x04")
    central = data.index(b"PK\x01\x02")
    for offset in (local + 6, central + 8):
        (flags,) = struct.unpack_from("<H", data, offset)
        struct.pack_into("<H", data, offset, flags | 0x1)
    with pytest.raises(ArchiveReadError):
        Archive.load(bytes(data))


def test_from_file_missing_is_read_error(tmp_path: Path):
    with pytest.raises(ArchiveReadError):
        Archive.from_file(tmp_path / "missing.modl")


def test_write_to_file_roundtrip(tmp_path: Path):
    out = tmp_path / "nested" / "out.modl"
    archive = Archive([ArchiveEntry.file("a.txt", b"hello")])
    archive.write_to_file(out)
    assert Archive.from_file(out).get("a.txt").content == b"hello"
    assert [p.name for p in out.parent.iterdir()] == ["out.modl"]


def test_write_to_file_unwritable_destination(tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"not a directory")
    with pytest.raises(ArchiveWriteError):
        Archive([ArchiveEntry.file("a", b"1")]).write_to_file(blocker / "out.modl")


def test_write_failure_keeps_existing_target(tmp_path: Path, monkeypatch):
    out = tmp_path / "out.modl"
    out.write_bytes(b"previous")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("modsign.archive.zipmap.os.replace", boom)
    with pytest.raises(ArchiveWriteError):
        Archive([ArchiveEntry.file("a", b"1")]).write_to_file(out)
    assert out.read_bytes() == b"previous"
    assert [p.name for p in tmp_path.iterdir()] == ["out.modl"]


def test_write_to_file_keeps_existing_mode(tmp_path: Path):
    out = tmp_path / "out.modl"
    out.write_bytes(b"previous")
    os.chmod(out, 0o600)
    Archive([ArchiveEntry.file("a", b"1")]).write_to_file(out)
    assert stat.S_IMODE(out.stat().st_mode) == 0o600


def test_write_to_file_new_target_honours_umask(tmp_path: Path):
    out = tmp_path / "out.modl"
    old = os.umask(0o027)
    try:
        Archive([ArchiveEntry.file("a", b"1")]).write_to_file(out)
    finally:
        os.umask(old)
    assert stat.S_IMODE(out.stat().st_mode) == 0o640


def test_directory_entry_drops_content():
    entry = ArchiveEntry(path="d/", content=b"junk", is_directory=True)
    assert entry.content == b""
    with pytest.raises(ValueError):
        ArchiveEntry(path="")
