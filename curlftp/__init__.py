"""curlftp: FTP, FTPS, FTPES and SFTP client built on libcurl."""

from __future__ import annotations

from curlftp.client import FileInfo, FTPClient
from curlftp.config import ConfigManager
from curlftp.errors import (
    AlreadyInitializedError,
    FTPClientError,
    InvalidArgumentError,
    LocalIOError,
    NotInitializedError,
    PartialFailureError,
    RemoteTransferError,
    TargetNotFoundError,
)
from curlftp.session import Protocol, Settings

__version__ = "1.0.0"

__all__ = [
    "AlreadyInitializedError",
    "ConfigManager",
    "FTPClient",
    "FTPClientError",
    "FileInfo",
    "InvalidArgumentError",
    "LocalIOError",
    "NotInitializedError",
    "PartialFailureError",
    "Protocol",
    "RemoteTransferError",
    "Settings",
    "TargetNotFoundError",
]
