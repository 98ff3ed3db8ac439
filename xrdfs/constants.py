"""Module defining various global constants."""

# xrdfs version
VERSION = "1.0.0"

# xrdfs protocol
# The major version must be identical on client and server.
PROTOCOL_VERSION = "1.0.0"

# Well-known XRootD port, used for the default endpoints.
DEFAULT_PORT = 1094

# Compression type advertised for files opened with OpenOptions.COMPRESS.
COMPRESSION_TYPE = "lz4"

# Advisory block size reported alongside the compression type.
COMPRESSION_PAGE_SIZE = 64 * 1024
