"""Client and server for a remote file-access protocol modeled after XRootD."""
