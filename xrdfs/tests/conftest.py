"""Module with fixtures to run RPC servers within the test process."""

import threading

import pytest

from xrdfs.client import Client
from xrdfs.filesystem import LocalFileSystemService
import xrdfs.rpc as rpc


def start_server(service, **kwargs) -> str:
    """Serve the service from a background thread and return the bound endpoint."""
    server = rpc.Server(service, **kwargs)
    endpoint = server.bind("tcp://127.0.0.1:*")

    t = threading.Thread(target=server.run, daemon=True)
    t.start()

    return endpoint


@pytest.fixture
def serve():
    return start_server


@pytest.fixture
def export_root(tmp_path):
    root = tmp_path / "export"
    root.mkdir()
    return root


@pytest.fixture
def client(export_root):
    endpoint = start_server(LocalFileSystemService(str(export_root)), worker_count=2)
    return Client(endpoint, timeout_ms=5000)


@pytest.fixture
def fs(client):
    return client.fs()
