"""Session lifecycle and the process-wide libcurl reference count.

A :class:`Session` owns exactly one transport engine handle between
:meth:`Session.open` and :meth:`Session.close`.  libcurl's global state is
initialised when the first client acquires it and torn down when the last one
releases it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

import pycurl

from curlftp.errors import AlreadyInitializedError, InvalidArgumentError, NotInitializedError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

ProgressFnCallback = Callable[[Any, float, float, float, float], bool]


class Protocol(Enum):
    """Protocols reachable through the engine, valued by URL scheme."""

    FTP = "ftp"
    FTPS = "ftps"
    FTPES = "ftpes"
    SFTP = "sftp"

    @property
    def scheme(self) -> str:
        """URL prefix for this protocol, e.g. ``"ftps://"``."""
        return f"{self.value}://"

    @property
    def uses_tls(self) -> bool:
        """True for the protocols that require TLS on control and data."""
        return self in (Protocol.FTPS, Protocol.FTPES)


@dataclass(frozen=True)
class Settings:
    """Per-session feature switches.

    ``enable_log`` and ``enable_ssh`` default to on, matching the historical
    "all flags" default.
    """

    enable_log: bool = True
    enable_ssh: bool = True
    enable_trace: bool = False


@dataclass(frozen=True)
class SessionConfig:
    """Connection target and credentials, fixed for the life of a session."""

    server: str
    port: int = 0
    login: str = ""
    password: str = field(default="", repr=False)
    protocol: Protocol = Protocol.FTP
    settings: Settings = field(default_factory=Settings)

    @property
    def userpwd(self) -> str:
        return f"{self.login}:{self.password}"


@dataclass
class ProgressHook:
    """Progress callback bound to its owner.

    Calling the hook with libcurl's transfer-info arguments returns the value
    ``XFERINFOFUNCTION`` expects: 0 to continue, 1 to abort.
    """

    callback: ProgressFnCallback
    owner: Any = None

    def __call__(
        self,
        download_total: float,
        download_now: float,
        upload_total: float,
        upload_now: float,
    ) -> int:
        keep_going = self.callback(
            self.owner, download_total, download_now, upload_total, upload_now
        )
        return 0 if keep_going else 1


@dataclass
class RequestOptions:
    """Transport tuning applied on every request.

    Unlike :class:`SessionConfig` these may change between requests; they are
    read fresh each time the request executor runs.
    """

    active_mode: bool = False
    active_port: str = "-"
    no_signal: bool = False
    timeout: int = 0
    proxy: str = ""
    ssl_cert_file: str = ""
    ssl_key_file: str = ""
    ssl_key_password: str = field(default="", repr=False)
    ssh_known_hosts: str = ""
    ssh_host_md5: str = ""
    ssh_public_key_file: str = ""
    ssh_private_key_file: str = ""
    progress: Optional[ProgressHook] = None


# ---------------------------------------------------------------------------
# Process-wide libcurl reference count
# ---------------------------------------------------------------------------

_session_lock = threading.Lock()
_session_count = 0


def acquire_transport() -> int:
    """Register one more client; initialise libcurl on the first one.

    Returns the new reference count.
    """
    global _session_count
    with _session_lock:
        if _session_count == 0:
            pycurl.global_init(pycurl.GLOBAL_ALL)
            logger.debug("libcurl global state initialised")
        _session_count += 1
        return _session_count


def release_transport() -> int:
    """Drop one client; tear libcurl down when the last one is gone.

    Extra releases are ignored with a warning.  Returns the new count.
    """
    global _session_count
    with _session_lock:
        if _session_count <= 0:
            logger.warning("release_transport() called with no registered clients")
            return 0
        _session_count -= 1
        if _session_count == 0:
            pycurl.global_cleanup()
            logger.debug("libcurl global state cleaned up")
        return _session_count


def active_clients() -> int:
    """Current value of the process-wide reference count."""
    with _session_lock:
        return _session_count


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class Session:
    """Owns one configured connection context and its engine handle.

    The handle must not be kept by anyone else after :meth:`close`.
    """

    def __init__(self, engine_factory: Callable[[], Any]) -> None:
        """Initialise an inactive session.

        Args:
            engine_factory: Zero-argument callable returning a new transport
                engine (normally :class:`curlftp.engine.CurlEngine`).
        """
        self._engine_factory = engine_factory
        self._engine: Any = None
        self._config: SessionConfig | None = None

    @property
    def active(self) -> bool:
        return self._engine is not None

    @property
    def config(self) -> SessionConfig:
        """Configuration of the live session.

        Raises:
            NotInitializedError: If no session is open.
        """
        if self._config is None:
            raise NotInitializedError("The session is not initialized")
        return self._config

    @property
    def settings(self) -> Settings:
        """Settings of the live session, or the defaults when none is open."""
        return self._config.settings if self._config is not None else Settings()

    @property
    def handle(self) -> Any:
        """The live transport engine.

        Raises:
            NotInitializedError: If no session is open.
        """
        if self._engine is None:
            raise NotInitializedError("The session is not initialized")
        return self._engine

    def open(self, config: SessionConfig) -> None:
        """Create the engine handle for *config*.

        Raises:
            InvalidArgumentError: If ``config.server`` is empty.
            AlreadyInitializedError: If a handle already exists; the existing
                one is left untouched.
        """
        if not config.server:
            raise InvalidArgumentError("Empty host name")
        if self._engine is not None:
            raise AlreadyInitializedError(
                "The session is already initialized, clean it up first"
            )
        self._engine = self._engine_factory()
        self._config = config
        logger.debug(
            "Session opened for %s@%s (%s)",
            config.login,
            config.server,
            config.protocol.name,
        )

    def close(self) -> None:
        """Release the engine handle.

        Raises:
            NotInitializedError: If no session is open.
        """
        if self._engine is None:
            raise NotInitializedError("The session is not initialized")
        engine, self._engine = self._engine, None
        config, self._config = self._config, None
        engine.close()
        logger.debug("Session closed for %s", config.server if config else "")
