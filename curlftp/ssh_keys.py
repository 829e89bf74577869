"""SSH host-key helpers for SFTP sessions.

libcurl can pin an SFTP server by the MD5 fingerprint of its host key
(``SSH_HOST_PUBLIC_KEY_MD5``).  These helpers read that fingerprint from an
OpenSSH ``known_hosts`` file, fetch a server's key, and record accepted keys.
"""

from __future__ import annotations

import logging
import socket
from pathlib import Path

import paramiko

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22


def default_known_hosts() -> Path:
    return Path.home() / ".ssh" / "known_hosts"


def host_key_entry(host: str, port: int = DEFAULT_SSH_PORT) -> str:
    """Return the ``known_hosts`` lookup name for *host* on *port*."""
    if port in (0, DEFAULT_SSH_PORT):
        return host
    return f"[{host}]:{port}"


def fingerprint_md5(key: paramiko.PKey) -> str:
    """32-character lowercase hex MD5 fingerprint of *key*."""
    return key.get_fingerprint().hex()


def known_host_md5(
    host: str,
    port: int = DEFAULT_SSH_PORT,
    known_hosts: str | Path | None = None,
) -> str | None:
    """Return the MD5 fingerprint recorded for *host*, or None if unknown."""
    path = Path(known_hosts) if known_hosts else default_known_hosts()
    if not path.exists():
        logger.debug("No known_hosts file at %s", path)
        return None
    try:
        host_keys = paramiko.HostKeys(str(path))
    except (OSError, paramiko.SSHException) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return None

    entry = host_keys.lookup(host_key_entry(host, port))
    if not entry:
        return None
    key_type = next(iter(entry.keys()))
    return fingerprint_md5(entry[key_type])


def accept_host_key(
    host: str,
    key: paramiko.PKey,
    port: int = DEFAULT_SSH_PORT,
    known_hosts: str | Path | None = None,
) -> None:
    """Append *key* for *host* to ``known_hosts`` and save.

    Creates the file and its directory if they do not exist.
    """
    path = Path(known_hosts) if known_hosts else default_known_hosts()
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    host_keys = paramiko.HostKeys(str(path)) if path.exists() else paramiko.HostKeys()
    host_keys.add(host_key_entry(host, port), key.get_name(), key)
    host_keys.save(str(path))
    logger.info("Saved host key for %s to %s", host_key_entry(host, port), path)


def fetch_host_key(
    host: str,
    port: int = DEFAULT_SSH_PORT,
    timeout: float = 15.0,
) -> paramiko.PKey:
    """Connect to *host* and return the host key it presents.

    Raises:
        paramiko.SSHException: On SSH negotiation failure.
        OSError: On network-level failure.
    """
    sock = socket.create_connection((host, port or DEFAULT_SSH_PORT), timeout=timeout)
    transport = paramiko.Transport(sock)
    try:
        transport.start_client(timeout=timeout)
        key = transport.get_remote_server_key()
    finally:
        transport.close()
    logger.debug("Fetched %s host key from %s", key.get_name(), host_key_entry(host, port))
    return key
