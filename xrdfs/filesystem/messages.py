"""
Requests and responses exchanged for every protocol verb.

Each request names the service function that answers it through its verb. Requests
whose answer carries no information have no response type, the others are answered
with the response dataclass defined next to them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, List, Optional

from xrdfs.filesystem.common import (
    DirlistOptions,
    EntryStat,
    FileCompression,
    MkdirOptions,
    OpenMode,
    OpenOptions,
    StatOptions,
    VirtualFSStat,
)

#
# Session
#


@dataclass
class ProtocolRequest:
    verb: ClassVar[str] = "protocol"

    version: str


@dataclass
class ProtocolResponse:
    version: str


#
# Metadata access
#


@dataclass
class DirlistRequest:
    verb: ClassVar[str] = "dirlist"

    path: str
    options: DirlistOptions = DirlistOptions.STAT_INFO

    def __post_init__(self) -> None:
        self.options = DirlistOptions(self.options)


@dataclass
class DirlistResponse:
    entries: List[EntryStat] = field(default_factory=list)


@dataclass
class StatRequest:
    """
    Stat of a path, of an open file, or of the virtual file system behind a path.

    The VFS option turns the request into a capacity query that is answered with a
    VirtualFSStatResponse instead of a StatResponse.
    """

    verb: ClassVar[str] = "stat"

    path: str = ""
    options: StatOptions = StatOptions.NONE
    handle: Optional[bytes] = None

    def __post_init__(self) -> None:
        self.options = StatOptions(self.options)


@dataclass
class StatResponse:
    entry: EntryStat


@dataclass
class VirtualFSStatResponse:
    stat: VirtualFSStat


#
# File operations
#


@dataclass
class OpenRequest:
    verb: ClassVar[str] = "open"

    path: str
    mode: OpenMode = OpenMode(0)
    options: OpenOptions = OpenOptions.NONE

    def __post_init__(self) -> None:
        self.mode = OpenMode(self.mode)
        self.options = OpenOptions(self.options)


@dataclass
class OpenResponse:
    handle: bytes
    compression: FileCompression
    stat: EntryStat


@dataclass
class CloseRequest:
    verb: ClassVar[str] = "close"

    handle: bytes


@dataclass
class ReadRequest:
    verb: ClassVar[str] = "read"

    handle: bytes
    offset: int
    length: int


@dataclass
class ReadResponse:
    data: bytes


@dataclass
class WriteRequest:
    verb: ClassVar[str] = "write"

    handle: bytes
    offset: int
    data: bytes


@dataclass
class SyncRequest:
    verb: ClassVar[str] = "sync"

    handle: bytes


@dataclass
class TruncateRequest:
    """Truncation of a file by path, or of an open file when a handle is given."""

    verb: ClassVar[str] = "truncate"

    path: str = ""
    size: int = 0
    handle: Optional[bytes] = None


#
# File system structure
#


@dataclass
class MkdirRequest:
    verb: ClassVar[str] = "mkdir"

    path: str
    mode: OpenMode = OpenMode(0)
    options: MkdirOptions = MkdirOptions.NONE

    def __post_init__(self) -> None:
        self.mode = OpenMode(self.mode)
        self.options = MkdirOptions(self.options)


@dataclass
class RemoveRequest:
    verb: ClassVar[str] = "rm"

    path: str


@dataclass
class RemoveDirRequest:
    verb: ClassVar[str] = "rmdir"

    path: str


@dataclass
class RenameRequest:
    verb: ClassVar[str] = "mv"

    old_path: str
    new_path: str


@dataclass
class ChmodRequest:
    verb: ClassVar[str] = "chmod"

    path: str
    mode: OpenMode = OpenMode(0)

    def __post_init__(self) -> None:
        self.mode = OpenMode(self.mode)
