import errno
import os
import threading
import time

import pytest

from xrdfs.context import Context, OperationCancelledError
from xrdfs.filesystem import (
    EntryStat,
    FileSystem,
    OpenMode,
    OpenOptions,
    StatFlags,
    VirtualFSStat,
)
from xrdfs.filesystem.messages import StatRequest, StatResponse, VirtualFSStatResponse

PERM = OpenMode(0o755)


def test_mkdir_all_is_idempotent(fs):
    fs.mkdir_all("/a/b/c", PERM)
    fs.mkdir_all("/a/b/c", PERM)

    assert fs.stat("/a/b/c").is_dir


def test_mkdir_twice_fails(fs):
    fs.mkdir("/a", PERM)

    with pytest.raises(FileExistsError):
        fs.mkdir("/a", PERM)


def test_mkdir_requires_parent(fs):
    with pytest.raises(FileNotFoundError):
        fs.mkdir("/a/b", PERM)


def test_mkdir_all_materializes_parents(fs, export_root):
    fs.mkdir_all("/a/b/c", PERM)

    entry = fs.stat("/a/b")

    assert entry.is_dir
    assert entry.flags & StatFlags.IS_DIR
    assert (export_root / "a" / "b" / "c").is_dir()


def test_mkdir_all_over_file(fs, export_root):
    (export_root / "file").touch()

    with pytest.raises(FileExistsError):
        fs.mkdir_all("/file", PERM)


def test_stat_and_virtual_stat_are_independent(fs, client, export_root):
    (export_root / "file").write_bytes(b"abc")

    entry = fs.stat("/file")
    vfs = fs.virtual_stat("/file")

    assert isinstance(entry, EntryStat)
    assert isinstance(vfs, VirtualFSStat)
    assert entry.size == 3
    assert vfs.number_rw == 1

    # Asking for one kind of answer to the other kind of request is rejected
    with pytest.raises(TypeError):
        client.send(VirtualFSStatResponse, StatRequest("/file"))

    with pytest.raises(TypeError):
        client.send(StatResponse, StatRequest("/file", options=1))


def test_virtual_stat_of_nonexistent_prefix(fs):
    assert fs.virtual_stat("/does/not/exist").number_rw == 1


def test_stat_missing(fs):
    with pytest.raises(FileNotFoundError):
        fs.stat("/missing")


def test_open_snapshot_matches_stat(fs, export_root):
    (export_root / "file").write_bytes(b"abcdef")
    os.chmod(export_root / "file", 0o640)

    before = fs.stat("/file")

    with fs.open("/file", OpenMode(0), OpenOptions.OPEN_READ) as f:
        assert f.info == before
        assert f.info.size == 6
        assert f.info.mode == 0o640


def test_open_missing_without_create(fs):
    with pytest.raises(FileNotFoundError):
        fs.open("/missing", OpenMode(0o644), OpenOptions.OPEN_READ)


def test_open_create_write_read(fs):
    options = OpenOptions.NEW | OpenOptions.OPEN_UPDATE

    with fs.open("/file", OpenMode(0o644), options) as f:
        f.write_at(b"hello world", 0)
        f.sync()

        assert f.read_at(6, 5) == b"world"
        assert f.stat().size == 11
        assert f.info.size == 0

    assert fs.stat("/file").size == 11


def test_compressed_reads_are_transparent(fs, export_root):
    (export_root / "file").write_bytes(b"0123456789" * 1000)

    options = OpenOptions.OPEN_READ | OpenOptions.COMPRESS

    with fs.open("/file", OpenMode(0), options) as f:
        assert f.compression.is_compressed
        assert f.read_at(0, 10000) == b"0123456789" * 1000


def test_file_truncate(fs, export_root):
    (export_root / "file").write_bytes(b"abcdef")

    with fs.open("/file", OpenMode(0), OpenOptions.OPEN_UPDATE) as f:
        f.truncate(3)

    assert (export_root / "file").read_bytes() == b"abc"


def test_released_handle_is_rejected(fs, export_root):
    (export_root / "file").touch()

    f = fs.open("/file", OpenMode(0), OpenOptions.OPEN_READ)
    f.close()

    with pytest.raises(OSError) as e:
        f.read_at(0, 1)
    assert e.value.errno == errno.EBADF

    with pytest.raises(OSError) as e:
        f.close()
    assert e.value.errno == errno.EBADF


def test_dirlist_matches_stat(fs, export_root):
    (export_root / "dir").mkdir()
    (export_root / "dir" / "a").write_bytes(b"a" * 10)
    (export_root / "dir" / "b").mkdir()
    (export_root / "dir" / "c").write_bytes(b"")
    os.chmod(export_root / "dir" / "c", 0o755)
    os.symlink("a", export_root / "dir" / "link")

    entries = fs.dirlist("/dir")

    assert [e.name for e in entries] == ["a", "b", "c", "link"]

    for entry in entries:
        assert entry == fs.stat(f"/dir/{entry.name}")


def test_dirlist_does_not_follow_links_out_of_root(fs, export_root, tmp_path):
    (tmp_path / "secret").write_bytes(b"a" * 1000)
    (export_root / "dir").mkdir()
    os.symlink(tmp_path / "secret", export_root / "dir" / "escape")
    os.symlink("missing", export_root / "dir" / "dangling")

    entries = {e.name: e for e in fs.dirlist("/dir")}

    assert entries["escape"].id == os.lstat(export_root / "dir" / "escape").st_ino
    assert entries["escape"].flags & StatFlags.OTHER
    assert entries["dangling"].flags & StatFlags.OTHER

    with pytest.raises(PermissionError):
        fs.stat("/dir/escape")


def test_dirlist_errors(fs, export_root):
    (export_root / "file").touch()

    with pytest.raises(FileNotFoundError):
        fs.dirlist("/missing")

    with pytest.raises(NotADirectoryError):
        fs.dirlist("/file")


def test_remove_file(fs, export_root):
    (export_root / "file").touch()

    fs.remove_file("/file")

    with pytest.raises(FileNotFoundError):
        fs.remove_file("/file")


def test_truncate_extends_with_zeros(fs, export_root):
    (export_root / "file").write_bytes(b"ab")

    fs.truncate("/file", 4)

    assert (export_root / "file").read_bytes() == b"ab\x00\x00"


def test_remove_dir(fs, export_root):
    (export_root / "full").mkdir()
    (export_root / "full" / "file").touch()
    (export_root / "empty").mkdir()

    fs.remove_dir("/empty")

    with pytest.raises(OSError) as e:
        fs.remove_dir("/full")
    assert e.value.errno == errno.ENOTEMPTY

    with pytest.raises(FileNotFoundError):
        fs.remove_dir("/empty")


def test_rename(fs, export_root):
    (export_root / "old").write_bytes(b"abc")

    fs.rename("/old", "/new")

    assert fs.stat("/new").size == 3

    with pytest.raises(FileNotFoundError):
        fs.rename("/old", "/other")


def test_chmod(fs, export_root):
    (export_root / "file").touch()

    fs.chmod("/file", OpenMode(0o600))

    assert fs.stat("/file").mode == 0o600


def test_cancelled_call_returns_nothing(fs, export_root):
    (export_root / "file").touch()

    ctx = Context()
    ctx.cancel()

    result = None

    with pytest.raises(OperationCancelledError):
        result = fs.stat("/file", ctx=ctx)

    assert result is None
    assert fs.stat("/file", ctx=Context(timeout=5.0)).name == "file"


def test_concurrent_operations(client, export_root):
    fs1 = client.fs()
    fs2 = FileSystem(client)

    errors = []

    def worker(fs, i):
        try:
            fs.mkdir_all(f"/dir{i}/sub", PERM)
            assert fs.stat(f"/dir{i}/sub").is_dir
        except Exception as e:
            errors.append(e)

    threads = [
        threading.Thread(target=worker, args=(fs1 if i % 2 else fs2, i))
        for i in range(8)
    ]

    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(fs1.dirlist("/")) == 8


def test_deadline_applies_per_call(fs):
    ctx = Context(timeout=5.0)

    t_start = time.monotonic()
    fs.mkdir_all("/a/b", PERM, ctx=ctx)
    fs.stat("/a/b", ctx=ctx)

    assert time.monotonic() - t_start < 5.0
