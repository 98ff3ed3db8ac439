"""Module that contains the file system façade that turns operations into requests."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional, Type, TypeVar

from xrdfs.context import Context
from xrdfs.filesystem.common import (
    EntryStat,
    MkdirOptions,
    OpenMode,
    OpenOptions,
    StatOptions,
    VirtualFSStat,
)
from xrdfs.filesystem.file import File
from xrdfs.filesystem.messages import (
    ChmodRequest,
    DirlistRequest,
    DirlistResponse,
    MkdirRequest,
    OpenRequest,
    OpenResponse,
    RemoveDirRequest,
    RemoveRequest,
    RenameRequest,
    StatRequest,
    StatResponse,
    TruncateRequest,
    VirtualFSStatResponse,
)

T = TypeVar("T")


class Transport(ABC):
    """
    Carrier of requests to the server.

    Implementations must be safe to use from multiple threads at once and must give up
    on a call as soon as its context is cancelled.
    """

    @abstractmethod
    def call(self, request: Any, ctx: Optional[Context] = None) -> Any:
        """Send a request and return its plain acknowledgement."""

    @abstractmethod
    def send(
        self, response_type: Type[T], request: Any, ctx: Optional[Context] = None
    ) -> T:
        """Send a request and return its answer decoded as the given response type."""


class FileSystem:
    """
    File system operations on a remote server.

    Every operation is exactly one request/response exchange over the transport. The
    file system keeps no state of its own, so any number of instances can share a
    transport and be used from multiple threads. Arguments are not validated locally
    and errors reported by the server are raised as they are.
    """

    def __init__(self, transport: Transport):
        """Instantiate file system on top of a transport."""
        self._transport = transport

    @property
    def transport(self) -> Transport:
        return self._transport

    #
    # Metadata access
    #

    def dirlist(self, path: str, ctx: Optional[Context] = None) -> List[EntryStat]:
        """Return the entries of a directory together with their stat information."""
        resp = self._transport.send(DirlistResponse, DirlistRequest(path), ctx)
        return resp.entries

    def stat(self, path: str, ctx: Optional[Context] = None) -> EntryStat:
        """Return the stat information of the entry at the given path."""
        resp = self._transport.send(StatResponse, StatRequest(path), ctx)
        return resp.entry

    def virtual_stat(self, path: str, ctx: Optional[Context] = None) -> VirtualFSStat:
        """
        Return the virtual file system stat information for the given path.

        The path does not need to be an existing file system object. It is used as a
        prefix to select the servers and partitions that could hold objects whose path
        starts with it.
        """
        resp = self._transport.send(
            VirtualFSStatResponse, StatRequest(path, StatOptions.VFS), ctx
        )
        return resp.stat

    #
    # File operations
    #

    def open(
        self,
        path: str,
        mode: OpenMode,
        options: OpenOptions,
        ctx: Optional[Context] = None,
    ) -> File:
        """
        Open a file and return it together with its compression and stat info.

        Mode and options are sent as they are, so creating or truncating the file must
        be requested explicitly through the options.
        """
        resp = self._transport.send(OpenResponse, OpenRequest(path, mode, options), ctx)
        return File(self, resp.handle, resp.compression, resp.stat)

    def truncate(self, path: str, size: int, ctx: Optional[Context] = None) -> None:
        """Change the size of the named file."""
        self._transport.call(TruncateRequest(path=path, size=size), ctx)

    def remove_file(self, path: str, ctx: Optional[Context] = None) -> None:
        self._transport.call(RemoveRequest(path), ctx)

    #
    # File system structure
    #

    def mkdir(self, path: str, perm: OpenMode, ctx: Optional[Context] = None) -> None:
        """Create a directory, failing if its parent does not exist."""
        self._transport.call(MkdirRequest(path, perm), ctx)

    def mkdir_all(
        self, path: str, perm: OpenMode, ctx: Optional[Context] = None
    ) -> None:
        """
        Create a directory along with any missing parents.

        This is still a single request: the server is asked to create the whole path
        through the make-path option.
        """
        self._transport.call(MkdirRequest(path, perm, MkdirOptions.MAKE_PATH), ctx)

    def remove_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        """Remove a directory, which must be empty."""
        self._transport.call(RemoveDirRequest(path), ctx)

    def rename(
        self, old_path: str, new_path: str, ctx: Optional[Context] = None
    ) -> None:
        """Rename (move) old_path to new_path."""
        self._transport.call(RenameRequest(old_path, new_path), ctx)

    def chmod(self, path: str, perm: OpenMode, ctx: Optional[Context] = None) -> None:
        """Change the permissions of the named file to perm."""
        self._transport.call(ChmodRequest(path, perm), ctx)
