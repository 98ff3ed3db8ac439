"""Module for configuration variables with defaults that are overridable by a file."""

from __future__ import annotations

from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass, field
import os
from typing import Optional

from xrdfs.constants import DEFAULT_PORT
from xrdfs.logger import log


@dataclass
class ClientConfig:
    """Configuration variables related to connecting to a server."""

    endpoint: str = f"tcp://localhost:{DEFAULT_PORT}"
    token: Optional[str] = None

    # Socket timeout for every call, -1 waits indefinitely
    timeout_ms: int = 5000

    @staticmethod
    def load(section: SectionProxy) -> ClientConfig:
        """Load overridden variables from a section within a config file."""
        config = ClientConfig()

        config.endpoint = section.get("endpoint", fallback=config.endpoint)
        config.token = section.get("token", fallback=config.token)
        config.timeout_ms = section.getint("timeout_ms", fallback=config.timeout_ms)

        return config


@dataclass
class ServerConfig:
    """Configuration variables related to exporting a directory tree."""

    endpoint: str = f"tcp://0.0.0.0:{DEFAULT_PORT}"
    root: str = os.path.expanduser("~/.xrdfs/export")
    token: Optional[str] = None
    worker_count: int = 4

    @staticmethod
    def load(section: SectionProxy) -> ServerConfig:
        """Load overridden variables from a section within a config file."""
        config = ServerConfig()

        config.endpoint = section.get("endpoint", fallback=config.endpoint)
        config.root = os.path.expanduser(section.get("root", fallback=config.root))
        config.token = section.get("token", fallback=config.token)
        config.worker_count = section.getint("workers", fallback=config.worker_count)

        return config


@dataclass
class Config:
    """Configuration variables."""

    client: ClientConfig = field(default_factory=ClientConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @staticmethod
    def load(filename: str) -> Config:
        """Load overridden configuration variables from a config file."""
        parser = ConfigParser()

        config = Config()

        try:
            with open(filename, "r") as f:
                parser.read_string(f.read(), filename)

            if "client" in parser:
                config.client = ClientConfig.load(parser["client"])
            if "server" in parser:
                config.server = ServerConfig.load(parser["server"])
        except FileNotFoundError:
            log.info(f"no config file at {filename}")
        except Exception as e:
            # An unreadable config file is not considered a fatal error since we can
            # fall back to defaults.
            log.error(f"failed to read config file {filename}: {e}")
        else:
            log.info(f"loaded config: {config}")

        return config
