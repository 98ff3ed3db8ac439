"""Module that exports a local directory tree to xrdfs clients."""

import os
from typing import NoReturn

from xrdfs.config import ServerConfig
from xrdfs.filesystem import LocalFileSystemService
from xrdfs.logger import log
import xrdfs.rpc as rpc


def new_server(config: ServerConfig) -> rpc.Server:
    """Create an RPC server for the directory tree described by the configuration."""
    if not os.path.isdir(config.root):
        raise NotADirectoryError(f"exported root {config.root} is not a directory")

    log.info(f"exporting {config.root}")

    service = LocalFileSystemService(config.root)

    return rpc.Server(service, token=config.token, worker_count=config.worker_count)


def serve(config: ServerConfig) -> NoReturn:
    """Export the configured directory tree and handle calls forever."""
    new_server(config).serve(config.endpoint)
