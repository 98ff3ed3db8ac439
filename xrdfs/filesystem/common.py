"""Flags and data structures used by multiple file system components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
import os
import stat


class OpenMode(IntFlag):
    """Permission bits of a remote path (identical to the POSIX permission bits)."""

    OTHER_EXECUTE = 0o001
    OTHER_WRITE = 0o002
    OTHER_READ = 0o004
    GROUP_EXECUTE = 0o010
    GROUP_WRITE = 0o020
    GROUP_READ = 0o040
    OWNER_EXECUTE = 0o100
    OWNER_WRITE = 0o200
    OWNER_READ = 0o400


class OpenOptions(IntFlag):
    """Intents that can be declared when opening a file."""

    NONE = 0
    COMPRESS = 1
    DELETE = 2  # Create the file, truncating any existing file
    FORCE = 4
    NEW = 8  # Create the file, fail if it already exists
    OPEN_READ = 16
    OPEN_UPDATE = 32  # Open for reading and writing
    ASYNC = 64
    REFRESH = 128
    MAKE_PATH = 256  # Create missing parent directories
    OPEN_APPEND = 512
    RETURN_STAT = 1024
    REPLICA = 2048
    POSC = 4096  # Persist on successful close
    NO_WAIT = 8192
    SEQUENTIAL_IO = 16384
    OPEN_WRITE = 32768


class StatFlags(IntFlag):
    """Kind and state of a file system entry."""

    FILE = 0
    EXECUTABLE = 1
    IS_DIR = 2
    OTHER = 4
    OFFLINE = 8
    READABLE = 16
    WRITABLE = 32
    POSC_PENDING = 64
    BACKUP_EXISTS = 128


class StatOptions(IntFlag):
    """Variants of the stat request."""

    NONE = 0
    VFS = 1  # Virtual file system capacity instead of an entry


class MkdirOptions(IntFlag):
    """Options of the mkdir request."""

    NONE = 0
    MAKE_PATH = 1


class DirlistOptions(IntFlag):
    """Options of the dirlist request."""

    NONE = 0
    STAT_INFO = 2  # Return stat information inline with the listing


@dataclass(frozen=True)
class EntryStat:
    """Snapshot of a single file system entry."""

    name: str = ""
    has_stat_info: bool = False
    id: int = 0
    size: int = 0
    mtime: int = 0
    mode: OpenMode = OpenMode(0)
    flags: StatFlags = StatFlags.FILE

    def __post_init__(self) -> None:
        # Flags lose their type on the wire
        object.__setattr__(self, "mode", OpenMode(self.mode))
        object.__setattr__(self, "flags", StatFlags(self.flags))

    @property
    def is_dir(self) -> bool:
        return bool(self.flags & StatFlags.IS_DIR)

    @property
    def is_executable(self) -> bool:
        return bool(self.flags & StatFlags.EXECUTABLE)

    @staticmethod
    def from_stat(name: str, st: os.stat_result) -> EntryStat:
        """Instantiate from the attributes contained within an os.stat_result object."""
        flags = StatFlags.FILE

        if stat.S_ISDIR(st.st_mode):
            flags |= StatFlags.IS_DIR
        elif not stat.S_ISREG(st.st_mode):
            flags |= StatFlags.OTHER

        if st.st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH):
            flags |= StatFlags.EXECUTABLE
        if st.st_mode & stat.S_IRUSR:
            flags |= StatFlags.READABLE
        if st.st_mode & stat.S_IWUSR:
            flags |= StatFlags.WRITABLE

        return EntryStat(
            name=name,
            has_stat_info=True,
            id=st.st_ino,
            size=st.st_size,
            mtime=int(st.st_mtime),
            mode=OpenMode(stat.S_IMODE(st.st_mode) & 0o777),
            flags=flags,
        )


@dataclass(frozen=True)
class VirtualFSStat:
    """
    Capacity and usage of the storage behind a path prefix.

    Free space is expressed in megabytes and utilization in percent, separately for
    read/write and staging partitions.
    """

    number_rw: int = 0
    free_rw: int = 0
    utilization_rw: int = 0
    number_staging: int = 0
    free_staging: int = 0
    utilization_staging: int = 0

    @staticmethod
    def from_statvfs(st: os.statvfs_result) -> VirtualFSStat:
        """Instantiate from a single read/write partition described by os.statvfs."""
        if st.f_blocks > 0:
            utilization = round(100 * (st.f_blocks - st.f_bfree) / st.f_blocks)
        else:
            utilization = 0

        return VirtualFSStat(
            number_rw=1,
            free_rw=(st.f_bavail * st.f_frsize) >> 20,
            utilization_rw=utilization,
        )


@dataclass
class FileCompression:
    """Compression of the data read from an open file (empty type for none)."""

    page_size: int = 0
    type: str = ""

    @property
    def is_compressed(self) -> bool:
        return self.type != ""
