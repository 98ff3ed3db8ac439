"""Module that connects to an xrdfs server and carries file system requests to it."""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from semver import VersionInfo

from xrdfs.config import ClientConfig
import xrdfs.constants as constants
from xrdfs.context import Context
from xrdfs.filesystem import FileSystem, LocalFileSystemService, Transport
from xrdfs.filesystem.messages import ProtocolRequest, ProtocolResponse
from xrdfs.logger import log
import xrdfs.rpc as rpc

T = TypeVar("T")


class IncompatibleProtocolError(RuntimeError):
    """Exception raised when client and server speak different protocol versions."""


class Client(Transport):
    """
    Transport that sends every request as an RPC call of the request's verb.

    A client is safe to share between threads and file systems, each thread gets its
    own connection.

    Example:
    ```
    client = Client("tcp://localhost:1094", timeout_ms=5000)
    client.handshake()

    fs = client.fs()
    fs.mkdir_all("/data/run1", OpenMode(0o755))
    ```
    """

    def __init__(
        self, endpoint: str, token: Optional[str] = None, timeout_ms: int = -1
    ) -> None:
        self._rpc = rpc.Client(LocalFileSystemService, endpoint, token, timeout_ms)

    @staticmethod
    def from_config(config: ClientConfig) -> Client:
        return Client(config.endpoint, config.token, config.timeout_ms)

    @property
    def endpoint(self) -> str:
        return self._rpc.endpoint

    def call(self, request: Any, ctx: Optional[Context] = None) -> Any:
        return self._rpc.call(request.verb, request, ctx=ctx)

    def send(
        self, response_type: Type[T], request: Any, ctx: Optional[Context] = None
    ) -> T:
        """
        Send a request and return its answer decoded as the given response type.

        An answer of any other type is rejected instead of being interpreted as the
        expected one.
        """
        resp = self._rpc.call(request.verb, request, ctx=ctx)

        if not isinstance(resp, response_type):
            raise TypeError(
                f"unexpected {type(resp).__name__} in response to {request.verb}, "
                f"expected {response_type.__name__}"
            )

        return resp

    def fs(self) -> FileSystem:
        """Return a file system that makes its requests through this client."""
        return FileSystem(self)

    def handshake(self, ctx: Optional[Context] = None) -> VersionInfo:
        """
        Exchange protocol versions with the server and return the server's version.

        Client and server are compatible as long as their major versions match.
        """
        resp = self.send(
            ProtocolResponse, ProtocolRequest(constants.PROTOCOL_VERSION), ctx
        )

        server_version = VersionInfo.parse(resp.version)
        client_version = VersionInfo.parse(constants.PROTOCOL_VERSION)

        if server_version.major != client_version.major:
            raise IncompatibleProtocolError(
                f"incompatible protocol ({server_version} != {client_version})"
            )

        log.debug(f"connected to {self.endpoint} (protocol {server_version})")

        return server_version
