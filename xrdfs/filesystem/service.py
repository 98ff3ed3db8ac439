"""Module that answers file system requests from a local directory tree."""

from dataclasses import dataclass
import errno
import itertools
import os
import os.path
import stat
import threading
from typing import Dict, Union

import lz4.frame

from xrdfs.constants import COMPRESSION_PAGE_SIZE, COMPRESSION_TYPE, PROTOCOL_VERSION
from xrdfs.filesystem.common import (
    DirlistOptions,
    EntryStat,
    FileCompression,
    MkdirOptions,
    OpenOptions,
    StatOptions,
    VirtualFSStat,
)
from xrdfs.filesystem.messages import (
    ChmodRequest,
    CloseRequest,
    DirlistRequest,
    DirlistResponse,
    MkdirRequest,
    OpenRequest,
    OpenResponse,
    ProtocolRequest,
    ProtocolResponse,
    ReadRequest,
    ReadResponse,
    RemoveDirRequest,
    RemoveRequest,
    RenameRequest,
    StatRequest,
    StatResponse,
    SyncRequest,
    TruncateRequest,
    VirtualFSStatResponse,
    WriteRequest,
)


@dataclass
class _OpenFile:
    fd: int
    compression: FileCompression


class LocalFileSystemService:
    """
    RPC service that exposes a local directory tree.

    Paths in requests are interpreted relative to the exported root, so "/" is the root
    itself. Failures are raised as the native OSError subclasses, which the RPC layer
    recreates on the client side.
    """

    def __init__(self, root: str) -> None:
        self._root = os.path.realpath(root)

        self._files: Dict[bytes, _OpenFile] = {}
        self._files_lock = threading.Lock()
        self._handle_counter = itertools.count(1)

    def _contains(self, real_path: str) -> bool:
        return real_path == self._root or real_path.startswith(self._root + os.sep)

    def _resolve(self, path: str) -> str:
        """
        Map a request path onto the exported root.

        Symbolic links are followed for the containment check only, so that links
        pointing out of the exported tree are refused while operations like rm and mv
        still act on the link itself.
        """
        full_path = os.path.normpath(os.path.join(self._root, path.lstrip("/")))

        if not self._contains(os.path.realpath(full_path)):
            raise PermissionError(errno.EACCES, "path outside of exported root")

        return full_path

    def _child_stat(self, path: str, name: str) -> os.stat_result:
        """
        Stat a directory entry the same way stat() would.

        Links that dangle or lead out of the exported tree are described by the link
        itself instead.
        """
        child_path = os.path.join(path, name)

        if self._contains(os.path.realpath(child_path)) and os.path.exists(child_path):
            return os.stat(child_path)
        else:
            return os.lstat(child_path)

    def _file(self, handle: bytes) -> _OpenFile:
        with self._files_lock:
            if handle not in self._files:
                raise OSError(errno.EBADF, "invalid file handle")

            return self._files[handle]

    @staticmethod
    def _open_flags(options: OpenOptions) -> int:
        """Translate open options into flags for os.open()."""
        if options & OpenOptions.OPEN_UPDATE:
            flags = os.O_RDWR
        elif options & (OpenOptions.OPEN_WRITE | OpenOptions.OPEN_APPEND):
            flags = os.O_WRONLY
        else:
            flags = os.O_RDONLY

        if options & OpenOptions.OPEN_APPEND:
            flags |= os.O_APPEND

        if options & (OpenOptions.NEW | OpenOptions.DELETE):
            # Creating a file implies writing to it
            if flags == os.O_RDONLY:
                flags = os.O_RDWR

            if options & OpenOptions.NEW:
                flags |= os.O_CREAT | os.O_EXCL
            else:
                flags |= os.O_CREAT | os.O_TRUNC

        return flags

    #
    # Session
    #

    @staticmethod
    def protocol(request: ProtocolRequest) -> ProtocolResponse:
        return ProtocolResponse(PROTOCOL_VERSION)

    #
    # Metadata access
    #

    def dirlist(self, request: DirlistRequest) -> DirlistResponse:
        path = self._resolve(request.path)
        with_stat = bool(request.options & DirlistOptions.STAT_INFO)

        entries = []

        for name in sorted(os.listdir(path)):
            if with_stat:
                st = self._child_stat(path, name)
                entries.append(EntryStat.from_stat(name, st))
            else:
                entries.append(EntryStat(name=name))

        return DirlistResponse(entries)

    def stat(
        self, request: StatRequest
    ) -> Union[StatResponse, VirtualFSStatResponse]:
        if request.handle is not None:
            st = os.fstat(self._file(request.handle).fd)
            return StatResponse(EntryStat.from_stat("", st))

        if request.options & StatOptions.VFS:
            # The whole namespace lives on a single partition, whatever the prefix
            return VirtualFSStatResponse(
                VirtualFSStat.from_statvfs(os.statvfs(self._root))
            )

        path = self._resolve(request.path)
        name = os.path.basename(request.path.rstrip("/"))

        return StatResponse(EntryStat.from_stat(name, os.stat(path)))

    #
    # File operations
    #

    def open(self, request: OpenRequest) -> OpenResponse:
        path = self._resolve(request.path)
        options = OpenOptions(request.options)

        if options & OpenOptions.MAKE_PATH:
            os.makedirs(os.path.dirname(path), exist_ok=True)

        fd = os.open(path, self._open_flags(options), request.mode)

        try:
            st = os.fstat(fd)

            if stat.S_ISDIR(st.st_mode):
                raise IsADirectoryError(errno.EISDIR, os.strerror(errno.EISDIR))
        except OSError:
            os.close(fd)
            raise

        if options & OpenOptions.COMPRESS:
            compression = FileCompression(COMPRESSION_PAGE_SIZE, COMPRESSION_TYPE)
        else:
            compression = FileCompression()

        handle = next(self._handle_counter).to_bytes(4, "big")

        with self._files_lock:
            self._files[handle] = _OpenFile(fd, compression)

        name = os.path.basename(request.path.rstrip("/"))

        return OpenResponse(handle, compression, EntryStat.from_stat(name, st))

    def read(self, request: ReadRequest) -> ReadResponse:
        f = self._file(request.handle)
        data = os.pread(f.fd, request.length, request.offset)

        if f.compression.is_compressed:
            data = lz4.frame.compress(data)

        return ReadResponse(data)

    def write(self, request: WriteRequest) -> None:
        f = self._file(request.handle)
        view = memoryview(request.data)

        # pwrite may write less than requested
        offset = request.offset
        while len(view) > 0:
            written = os.pwrite(f.fd, view, offset)
            view = view[written:]
            offset += written

    def sync(self, request: SyncRequest) -> None:
        os.fsync(self._file(request.handle).fd)

    def truncate(self, request: TruncateRequest) -> None:
        if request.handle is not None:
            os.ftruncate(self._file(request.handle).fd, request.size)
        else:
            os.truncate(self._resolve(request.path), request.size)

    def close(self, request: CloseRequest) -> None:
        with self._files_lock:
            f = self._files.pop(request.handle, None)

        if f is None:
            raise OSError(errno.EBADF, "invalid file handle")

        os.close(f.fd)

    #
    # File system structure
    #

    def mkdir(self, request: MkdirRequest) -> None:
        path = self._resolve(request.path)

        if request.options & MkdirOptions.MAKE_PATH:
            os.makedirs(path, request.mode, exist_ok=True)
        else:
            os.mkdir(path, request.mode)

    def rm(self, request: RemoveRequest) -> None:
        os.unlink(self._resolve(request.path))

    def rmdir(self, request: RemoveDirRequest) -> None:
        path = self._resolve(request.path)

        if path == self._root:
            raise PermissionError(errno.EACCES, "cannot remove exported root")

        os.rmdir(path)

    def mv(self, request: RenameRequest) -> None:
        os.rename(self._resolve(request.old_path), self._resolve(request.new_path))

    def chmod(self, request: ChmodRequest) -> None:
        os.chmod(self._resolve(request.path), request.mode)
