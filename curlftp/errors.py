"""Exception hierarchy for curlftp.

Internal helpers raise these; the public ``FTPClient`` operations catch
:class:`FTPClientError`, send the message to the log sink and return a
failure value instead of propagating.
"""

from __future__ import annotations


class FTPClientError(Exception):
    """Base class for every expected curlftp failure."""


class NotInitializedError(FTPClientError):
    """Raised when an operation needs a live session and none exists."""


class AlreadyInitializedError(FTPClientError):
    """Raised when ``init_session`` is called while a session is live."""


class InvalidArgumentError(FTPClientError, ValueError):
    """Raised for empty host or path arguments."""


class LocalIOError(FTPClientError):
    """Raised when a local file or directory cannot be opened, created or stat'ed."""


class TargetNotFoundError(LocalIOError):
    """Raised when the local output directory of a wildcard download is missing."""


class RemoteTransferError(FTPClientError):
    """Raised when the transport engine returns a non-OK result code.

    Carries the engine's numeric *code* and its *detail* message.
    """

    def __init__(self, message: str, code: int, detail: str = "") -> None:
        """Initialise with the engine result code and error text."""
        super().__init__(message)
        self.code = code
        self.detail = detail

    def __str__(self) -> str:
        base = super().__str__()
        if self.detail:
            return f"{base} (error {self.code}: {self.detail})"
        return f"{base} (error {self.code})"


class PartialFailureError(FTPClientError):
    """Raised when some subtrees of a recursive wildcard download failed.

    ``failed`` lists the remote patterns whose recursion did not succeed.
    """

    def __init__(self, message: str, failed: list[str]) -> None:
        super().__init__(message)
        self.failed = list(failed)
