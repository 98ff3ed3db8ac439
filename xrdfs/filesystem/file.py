"""Module that contains the handle to a file opened on the server."""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

import lz4.frame

from xrdfs.context import Context
from xrdfs.filesystem.common import EntryStat, FileCompression
from xrdfs.filesystem.messages import (
    CloseRequest,
    ReadRequest,
    ReadResponse,
    StatRequest,
    StatResponse,
    SyncRequest,
    TruncateRequest,
    WriteRequest,
)

if TYPE_CHECKING:
    from xrdfs.filesystem.filesystem import FileSystem


class File:
    """
    File opened through FileSystem.open().

    The server-assigned handle stays valid until close() is called. Handle validity is
    not tracked locally: calls made after closing are rejected by the server with an
    OSError (EBADF). The stat info is the one taken at open time and is not refreshed,
    use stat() for current information.
    """

    def __init__(
        self,
        fs: FileSystem,
        handle: bytes,
        compression: FileCompression,
        info: EntryStat,
    ) -> None:
        self._fs = fs
        self._handle = handle
        self._compression = compression
        self._info = info

    def __repr__(self) -> str:
        return f"File(handle={self._handle.hex()}, info={self._info})"

    @property
    def filesystem(self) -> FileSystem:
        return self._fs

    @property
    def handle(self) -> bytes:
        return self._handle

    @property
    def compression(self) -> FileCompression:
        return self._compression

    @property
    def info(self) -> EntryStat:
        return self._info

    def read_at(self, offset: int, size: int, ctx: Optional[Context] = None) -> bytes:
        """
        Read up to size bytes starting at offset.

        Files opened with OpenOptions.COMPRESS are transferred as LZ4 frames and
        decompressed here.
        """
        resp = self._fs.transport.send(
            ReadResponse, ReadRequest(self._handle, offset, size), ctx
        )

        if self._compression.is_compressed:
            return lz4.frame.decompress(resp.data)
        else:
            return resp.data

    def write_at(self, data: bytes, offset: int, ctx: Optional[Context] = None) -> None:
        self._fs.transport.call(WriteRequest(self._handle, offset, data), ctx)

    def truncate(self, size: int, ctx: Optional[Context] = None) -> None:
        self._fs.transport.call(TruncateRequest(size=size, handle=self._handle), ctx)

    def sync(self, ctx: Optional[Context] = None) -> None:
        """Commit written data to stable storage on the server."""
        self._fs.transport.call(SyncRequest(self._handle), ctx)

    def stat(self, ctx: Optional[Context] = None) -> EntryStat:
        """Return current stat information of the open file."""
        resp = self._fs.transport.send(
            StatResponse, StatRequest(handle=self._handle), ctx
        )
        return resp.entry

    def close(self, ctx: Optional[Context] = None) -> None:
        """Release the handle on the server."""
        self._fs.transport.call(CloseRequest(self._handle), ctx)

    def __enter__(self) -> File:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
