"""
Modules that implement the remote file system.

The client side revolves around FileSystem, a façade that turns file system operations
like dirlist, open, stat and mkdir into requests. It does not talk to the network
itself: every operation hands exactly one request to a Transport and maps the answer
back into an EntryStat, VirtualFSStat or File. Composed operations are expressed by
setting option bits on the request rather than by issuing several requests, so
mkdir_all() is the same request as mkdir() with MkdirOptions.MAKE_PATH set and
virtual_stat() is the same request as stat() with StatOptions.VFS set.

The server side is LocalFileSystemService, which answers the requests from a local
directory tree. Errors travel back to the caller as the exceptions the service raised.
"""

from .common import (
    DirlistOptions,
    EntryStat,
    FileCompression,
    MkdirOptions,
    OpenMode,
    OpenOptions,
    StatFlags,
    StatOptions,
    VirtualFSStat,
)
from .file import File
from .filesystem import FileSystem, Transport
from .service import LocalFileSystemService

__all__ = [
    "DirlistOptions",
    "EntryStat",
    "File",
    "FileCompression",
    "FileSystem",
    "LocalFileSystemService",
    "MkdirOptions",
    "OpenMode",
    "OpenOptions",
    "StatFlags",
    "StatOptions",
    "Transport",
    "VirtualFSStat",
]
