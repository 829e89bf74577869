"""FTP/FTPS/FTPES/SFTP client built on a single "perform one request" primitive.

Every operation follows the same shape: validate arguments, require a live
session, reset the engine handle, set the operation's options, then call
:meth:`FTPClient.perform`, which layers the session-wide options on top and
runs exactly one request.

Failures never propagate out of the public operations.  They are reported
through the log sink (when ``Settings.enable_log`` is set) and turned into a
``False`` / ``None`` return value.
"""

from __future__ import annotations

import io
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar
from urllib.parse import urlsplit

import pycurl

from curlftp.engine import E_OK, CurlEngine
from curlftp.errors import (
    FTPClientError,
    InvalidArgumentError,
    LocalIOError,
    RemoteTransferError,
)
from curlftp.session import (
    ProgressFnCallback,
    ProgressHook,
    Protocol,
    RequestOptions,
    Session,
    SessionConfig,
    Settings,
    acquire_transport,
    release_transport,
)
from curlftp.ssh_keys import known_host_md5
from curlftp.trace import CurlTracer
from curlftp.transfer import WildcardDownloader
from curlftp.utils.path_helpers import (
    build_url,
    normalize_proxy,
    split_parent_and_leaf,
    split_scheme,
)

logger = logging.getLogger(__name__)

LogFnCallback = Callable[[str], None]
T = TypeVar("T")


@dataclass
class FileInfo:
    """Remote file metadata returned by :meth:`FTPClient.info`."""

    modified_time: float = 0.0
    size: float = 0.0


def _discard_header(_line: bytes) -> None:
    """``HEADERFUNCTION`` that drops header output."""


class FTPClient:
    """Client for one remote server at a time.

    Usage::

        with FTPClient() as client:
            client.init_session("127.0.0.1", 21, "user", "secret")
            client.download_wildcard("/tmp/mirror", "pub/*")
            client.cleanup_session()
    """

    def __init__(
        self,
        logger_callback: Optional[LogFnCallback] = None,
        engine_factory: Callable[[], Any] = CurlEngine,
    ) -> None:
        """Register with the process-wide libcurl reference count.

        Args:
            logger_callback: Sink for failure messages.  Defaults to this
                module's logger at ERROR level.
            engine_factory: Zero-argument callable creating the transport
                engine for each session.
        """
        self._log_sink = logger_callback or logger.error
        self._session = Session(engine_factory)
        self._options = RequestOptions()
        self._tracer = CurlTracer()
        self._closed = False
        acquire_transport()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "FTPClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Clean up a live session and release libcurl.  Safe to call twice."""
        if self._closed:
            return
        if self._session.active:
            self._report("The FTP session was not cleaned up before closing the client")
            self.cleanup_session()
        self._closed = True
        release_transport()

    def init_session(
        self,
        host: str,
        port: int,
        login: str,
        password: str,
        protocol: Protocol = Protocol.FTP,
        settings: Optional[Settings] = None,
    ) -> bool:
        """Start a session with *host*.

        Returns False for an empty host or when a session is already live; the
        live session is left untouched in that case.
        """
        config = SessionConfig(
            server=host,
            port=port,
            login=login,
            password=password,
            protocol=protocol,
            settings=settings or Settings(),
        )
        return self._run(lambda: self._session.open(config) or True, False)

    def cleanup_session(self) -> bool:
        """End the current session.  Returns False if none was started."""
        return self._run(lambda: self._session.close() or True, False)

    @property
    def active(self) -> bool:
        """True while a session is live."""
        return self._session.active

    # ------------------------------------------------------------------
    # Request settings
    # ------------------------------------------------------------------

    def set_proxy(self, proxy: str) -> None:
        """Tunnel requests through the HTTP proxy *proxy*; empty disables it."""
        self._options.proxy = normalize_proxy(proxy)

    def set_progress_callback(
        self, callback: Optional[ProgressFnCallback], owner: Any = None
    ) -> None:
        """Register ``callback(owner, dl_total, dl_now, ul_total, ul_now) -> bool``.

        Returning False from the callback aborts the running request.
        Passing None removes it.
        """
        self._options.progress = ProgressHook(callback, owner) if callback else None

    def set_timeout(self, seconds: int) -> None:
        self._options.timeout = max(0, int(seconds))

    def set_active(self, enabled: bool, port: str = "-") -> None:
        """Use active mode (``PORT``/``EPRT``) with the given ``FTPPORT`` spec."""
        self._options.active_mode = enabled
        self._options.active_port = port

    def set_no_signal(self, enabled: bool) -> None:
        self._options.no_signal = enabled

    def set_ssl_cert_file(self, path: str) -> None:
        self._options.ssl_cert_file = path

    def set_ssl_key_file(self, path: str) -> None:
        self._options.ssl_key_file = path

    def set_ssl_key_password(self, password: str) -> None:
        self._options.ssl_key_password = password

    def set_ssh_known_hosts(self, path: str) -> None:
        self._options.ssh_known_hosts = path

    def set_ssh_host_md5(self, fingerprint: str) -> None:
        """Pin the SFTP server to the host key with this MD5 hex fingerprint."""
        self._options.ssh_host_md5 = fingerprint.replace(":", "").lower()

    def set_ssh_key_files(self, public_key: str, private_key: str) -> None:
        self._options.ssh_public_key_file = public_key
        self._options.ssh_private_key_file = private_key

    def set_trace_log_directory(self, directory: str | Path | None) -> None:
        """Also write libcurl traces to hourly files in *directory*."""
        self._tracer = CurlTracer(directory)

    def pin_host_key(self, known_hosts: str | Path | None = None) -> bool:
        """Pin the current SFTP server to the key recorded in ``known_hosts``."""

        def _pin() -> bool:
            config = self._session.config
            host = self._server_host()
            fingerprint = known_host_md5(host, config.port, known_hosts)
            if fingerprint is None:
                raise LocalIOError(f"No known host key for {host}")
            self.set_ssh_host_md5(fingerprint)
            logger.debug("Pinned %s to host key %s", host, fingerprint)
            return True

        return self._run(_pin, False)

    # ------------------------------------------------------------------
    # Helpers shared with the transfer module
    # ------------------------------------------------------------------

    def build_url(self, relative_path: str) -> str:
        """Request URL for *relative_path* on the current server."""
        config = self._session.config
        return build_url(config.server, config.protocol, relative_path)

    def prepare_request(self) -> Any:
        """Return the live engine with all of its options cleared.

        Raises:
            NotInitializedError: If no session is live.
        """
        engine = self._session.handle
        engine.reset()
        return engine

    def report(self, message: str) -> None:
        """Send *message* to the log sink if logging is enabled."""
        self._report(message)

    def perform(self) -> int:
        """Layer the session-wide options on the engine and run one request.

        The engine must already be reset and carry the URL and the
        operation-specific options.  Returns the engine result code unchanged.
        """
        engine = self._session.handle
        config = self._session.config
        options = self._options

        engine.setopt(pycurl.USERPWD, config.userpwd)
        if config.port:
            engine.setopt(pycurl.PORT, config.port)

        if options.active_mode:
            engine.setopt(pycurl.FTPPORT, options.active_port)

        if options.timeout > 0:
            engine.setopt(pycurl.TIMEOUT, options.timeout)
            # no SIGALRM on timeout
            engine.setopt(pycurl.NOSIGNAL, 1)

        if options.proxy:
            engine.setopt(pycurl.PROXY, options.proxy)
            engine.setopt(pycurl.HTTPPROXYTUNNEL, 1)
            if not options.active_mode:
                engine.setopt(pycurl.FTP_USE_EPSV, 1)

        if options.no_signal:
            engine.setopt(pycurl.NOSIGNAL, 1)

        if options.progress is not None:
            engine.setopt(pycurl.XFERINFOFUNCTION, options.progress)
            engine.setopt(pycurl.NOPROGRESS, 0)

        if config.protocol.uses_tls:
            engine.setopt(pycurl.USE_SSL, pycurl.USESSL_ALL)

        if config.protocol is Protocol.SFTP:
            if config.settings.enable_ssh:
                # needs a running ssh-agent (or pageant on Windows)
                engine.setopt(pycurl.SSH_AUTH_TYPES, pycurl.SSH_AUTH_AGENT)
            if options.ssh_known_hosts:
                engine.setopt(pycurl.SSH_KNOWNHOSTS, options.ssh_known_hosts)
            if options.ssh_host_md5:
                engine.setopt(pycurl.SSH_HOST_PUBLIC_KEY_MD5, options.ssh_host_md5)
            if options.ssh_public_key_file:
                engine.setopt(pycurl.SSH_PUBLIC_KEYFILE, options.ssh_public_key_file)
            if options.ssh_private_key_file:
                engine.setopt(pycurl.SSH_PRIVATE_KEYFILE, options.ssh_private_key_file)

        if options.ssl_cert_file:
            engine.setopt(pycurl.SSLCERT, options.ssl_cert_file)
        if options.ssl_key_file:
            engine.setopt(pycurl.SSLKEY, options.ssl_key_file)
        if options.ssl_key_password:
            engine.setopt(pycurl.SSLKEYPASSWD, options.ssl_key_password)

        if not config.settings.enable_trace:
            return engine.perform()
        self._tracer.attach(engine)
        try:
            return engine.perform()
        finally:
            self._tracer.detach()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_dir(self, remote_dir: str) -> bool:
        """Create *remote_dir*; its parent must exist.

        ``create_dir("upload/bookmarks")`` sends ``MKD bookmarks`` to the
        ``upload`` folder.
        """
        return self._run(lambda: self._quote_command("MKD", remote_dir, create_missing=True), False)

    def remove_dir(self, remote_dir: str) -> bool:
        """Remove the empty directory *remote_dir*."""
        return self._run(lambda: self._quote_command("RMD", remote_dir), False)

    def remove_file(self, remote_file: str) -> bool:
        """Delete *remote_file*."""
        return self._run(lambda: self._quote_command("DELE", remote_file), False)

    def info(self, remote_file: str) -> Optional[FileInfo]:
        """Return the mtime and size of *remote_file*, or None.

        Either value alone is enough: a file reported with a valid mtime and
        no size still succeeds.
        """
        return self._run(lambda: self._info(remote_file), None)

    def list(self, remote_folder: str, only_names: bool = True) -> Optional[str]:
        """Return the listing of *remote_folder* (``\\n`` separated), or None.

        With *only_names* False the server's detailed listing is returned.
        """
        return self._run(lambda: self._list(remote_folder, only_names), None)

    def download_file(self, local_file: str | Path, remote_file: str) -> bool:
        """Download *remote_file* to *local_file*.

        On failure no partial file is left at *local_file*.
        """
        return self._run(lambda: self._download_file(Path(local_file) if local_file else None, remote_file), False)

    def upload_file(
        self, local_file: str | Path, remote_file: str, create_dirs: bool = False
    ) -> bool:
        """Upload *local_file* to *remote_file*.

        With *create_dirs* missing remote directories in the path are created.
        """
        return self._run(
            lambda: self._upload_file(Path(local_file) if local_file else None, remote_file, create_dirs),
            False,
        )

    def download_wildcard(self, local_dir: str | Path, remote_wildcard: str) -> bool:
        """Download everything matching *remote_wildcard* into *local_dir*.

        A pattern ending in ``/*`` mirrors the remote subtree recursively.
        See :mod:`curlftp.transfer`.
        """
        downloader = WildcardDownloader(self)
        return self._run(lambda: downloader.download(local_dir, remote_wildcard), False)

    # ------------------------------------------------------------------
    # Operation bodies
    # ------------------------------------------------------------------

    def _quote_command(self, command: str, remote_path: str, create_missing: bool = False) -> bool:
        if not remote_path:
            raise InvalidArgumentError(f"{command}: empty remote path")
        engine = self.prepare_request()
        config = self._session.config
        folder_url, leaf = split_parent_and_leaf(config.server, config.protocol, remote_path)

        engine.setopt(pycurl.URL, folder_url)
        engine.setopt(pycurl.POSTQUOTE, [f"{command} {leaf}"])
        engine.setopt(pycurl.NOBODY, 1)
        engine.setopt(pycurl.HEADER, 1)
        if create_missing:
            engine.setopt(pycurl.FTP_CREATE_MISSING_DIRS, 1)

        code = self.perform()
        if code != E_OK:
            raise RemoteTransferError(
                f"{command} {leaf} failed in {folder_url}", code, engine.errstr()
            )
        logger.debug("%s %s succeeded in %s", command, leaf, folder_url)
        return True

    def _info(self, remote_file: str) -> FileInfo:
        if not remote_file:
            raise InvalidArgumentError("Empty remote file name")
        engine = self.prepare_request()

        engine.setopt(pycurl.URL, self.build_url(remote_file))
        engine.setopt(pycurl.NOBODY, 1)
        engine.setopt(pycurl.OPT_FILETIME, 1)
        engine.setopt(pycurl.HEADERFUNCTION, _discard_header)
        engine.setopt(pycurl.HEADER, 0)

        code = self.perform()
        if code != E_OK:
            raise RemoteTransferError(
                f"Unable to get file info for {remote_file}", code, engine.errstr()
            )

        result = FileInfo()
        found = False
        file_time = engine.getinfo(pycurl.INFO_FILETIME)
        if file_time is not None and file_time >= 0:
            result.modified_time = float(file_time)
            found = True
        size = engine.getinfo(pycurl.CONTENT_LENGTH_DOWNLOAD_T)
        if size is not None and size > 0:
            result.size = float(size)
            found = True

        if not found:
            raise RemoteTransferError(
                f"Server reported neither time nor size for {remote_file}", code
            )
        return result

    def _list(self, remote_folder: str, only_names: bool) -> str:
        if not remote_folder:
            raise InvalidArgumentError("Empty remote folder name")
        engine = self.prepare_request()
        buffer = io.BytesIO()

        engine.setopt(pycurl.URL, self.build_url(remote_folder))
        if only_names:
            engine.setopt(pycurl.DIRLISTONLY, 1)
        engine.setopt(pycurl.WRITEFUNCTION, buffer.write)

        code = self.perform()
        if code != E_OK:
            raise RemoteTransferError(
                f"Unable to list {remote_folder}", code, engine.errstr()
            )
        return buffer.getvalue().decode("utf-8", errors="replace")

    def _download_file(self, local_file: Optional[Path], remote_file: str) -> bool:
        if local_file is None or not remote_file:
            raise InvalidArgumentError("Empty local or remote file name")
        engine = self.prepare_request()
        url = self.build_url(remote_file)

        try:
            output = open(local_file, "wb")
        except OSError as exc:
            raise LocalIOError(f"Unable to open local file {local_file}: {exc}") from exc

        with output:
            engine.setopt(pycurl.URL, url)
            engine.setopt(pycurl.WRITEFUNCTION, output.write)
            code = self.perform()

        if code != E_OK:
            try:
                os.remove(local_file)
            except OSError:
                logger.warning("Could not remove partial download %s", local_file)
            raise RemoteTransferError(
                f"Unable to download {remote_file} from {self._session.config.server}",
                code,
                engine.errstr(),
            )
        logger.info("Download complete: %s → %s", remote_file, local_file)
        return True

    def _upload_file(self, local_file: Optional[Path], remote_file: str, create_dirs: bool) -> bool:
        if local_file is None or not remote_file:
            raise InvalidArgumentError("Empty local or remote file name")
        engine = self.prepare_request()

        try:
            file_size = local_file.stat().st_size
            source = open(local_file, "rb")
        except OSError as exc:
            raise LocalIOError(f"Unable to open local file {local_file}: {exc}") from exc

        with source:
            engine.setopt(pycurl.URL, self.build_url(remote_file))
            engine.setopt(pycurl.READFUNCTION, source.read)
            engine.setopt(pycurl.INFILESIZE_LARGE, file_size)
            engine.setopt(pycurl.UPLOAD, 1)
            if create_dirs:
                engine.setopt(pycurl.FTP_CREATE_MISSING_DIRS, 1)
            code = self.perform()

        if code != E_OK:
            raise RemoteTransferError(
                f"Unable to upload {local_file}", code, engine.errstr()
            )
        logger.info("Upload complete: %s → %s (%d bytes)", local_file, remote_file, file_size)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _server_host(self) -> str:
        """Bare host name of the current server (no scheme, path or port)."""
        _, rest = split_scheme(self._session.config.server)
        return urlsplit("//" + rest).hostname or rest.split("/", 1)[0]

    def _run(self, operation: Callable[[], T], failure: T) -> T:
        """Run *operation*, converting curlftp errors into *failure*."""
        try:
            return operation()
        except FTPClientError as exc:
            self._report(str(exc))
            return failure

    def _report(self, message: str) -> None:
        if not self._session.settings.enable_log:
            return
        try:
            self._log_sink(message)
        except Exception:
            logger.exception("Exception in log callback")
