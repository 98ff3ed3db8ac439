from unittest import mock

import pytest
from semver import VersionInfo

from xrdfs.client import Client, IncompatibleProtocolError
from xrdfs.config import ClientConfig
import xrdfs.constants as constants
from xrdfs.context import Context
from xrdfs.filesystem import FileSystem
from xrdfs.filesystem.common import EntryStat
from xrdfs.filesystem.messages import (
    ProtocolResponse,
    RemoveRequest,
    StatRequest,
    StatResponse,
    VirtualFSStatResponse,
)


@pytest.fixture
def rpc_client():
    with mock.patch("xrdfs.rpc.Client") as m:
        yield m.return_value


def test_from_config():
    config = ClientConfig(endpoint="tcp://localhost:1234", token="abc", timeout_ms=10)

    with mock.patch("xrdfs.rpc.Client") as m:
        Client.from_config(config)

    args = m.call_args[0]
    assert args[1:] == ("tcp://localhost:1234", "abc", 10)


def test_call_dispatches_on_verb(rpc_client):
    client = Client("tcp://localhost:1234")
    rpc_client.call.return_value = None

    ctx = Context()
    assert client.call(RemoveRequest("/f"), ctx) is None

    rpc_client.call.assert_called_once_with("rm", RemoveRequest("/f"), ctx=ctx)


def test_send_returns_typed_response(rpc_client):
    client = Client("tcp://localhost:1234")
    resp = StatResponse(EntryStat(name="f"))
    rpc_client.call.return_value = resp

    assert client.send(StatResponse, StatRequest("/f")) is resp
    rpc_client.call.assert_called_once_with("stat", StatRequest("/f"), ctx=None)


def test_send_rejects_other_response_type(rpc_client):
    client = Client("tcp://localhost:1234")
    rpc_client.call.return_value = StatResponse(EntryStat(name="f"))

    with pytest.raises(TypeError):
        client.send(VirtualFSStatResponse, StatRequest("/f"))


def test_errors_pass_through(rpc_client):
    client = Client("tcp://localhost:1234")
    rpc_client.call.side_effect = PermissionError(13, "Permission denied")

    with pytest.raises(PermissionError):
        client.call(RemoveRequest("/f"))


def test_fs(rpc_client):
    client = Client("tcp://localhost:1234")
    fs = client.fs()

    assert isinstance(fs, FileSystem)
    assert fs.transport is client


def test_handshake(client):
    version = client.handshake()

    assert version == VersionInfo.parse(constants.PROTOCOL_VERSION)


def test_handshake_minor_difference(rpc_client):
    client = Client("tcp://localhost:1234")

    current = VersionInfo.parse(constants.PROTOCOL_VERSION)
    rpc_client.call.return_value = ProtocolResponse(str(current.bump_minor()))

    assert client.handshake() == current.bump_minor()


def test_handshake_incompatible(rpc_client):
    client = Client("tcp://localhost:1234")

    current = VersionInfo.parse(constants.PROTOCOL_VERSION)
    rpc_client.call.return_value = ProtocolResponse(str(current.bump_major()))

    with pytest.raises(IncompatibleProtocolError):
        client.handshake()
