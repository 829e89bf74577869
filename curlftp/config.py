"""Client settings and server profiles for curlftp.

Settings and profiles are stored as JSON files under ``~/.curlftp/``.
Passwords are never written to disk; callers pass them to
:meth:`ConfigManager.configure_client` at connection time.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from curlftp.session import Protocol, Settings

if TYPE_CHECKING:
    from curlftp.client import FTPClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: dict[str, Any] = {
    "timeout": 0,
    "active_mode": False,
    "no_signal": False,
    "proxy": "",
    "enable_log": True,
    "enable_ssh": True,
    "enable_trace": False,
    "trace_log_directory": "",
}

# Optional profile keys forwarded to the matching FTPClient setter.
_PROFILE_FILE_SETTERS = {
    "ssl_cert_file": "set_ssl_cert_file",
    "ssl_key_file": "set_ssl_key_file",
    "ssh_known_hosts": "set_ssh_known_hosts",
    "ssh_host_md5": "set_ssh_host_md5",
}

# ---------------------------------------------------------------------------
# ConfigManager
# ---------------------------------------------------------------------------


class ConfigManager:
    """Manages client settings and server profiles.

    Files are written atomically (temp file, then replace).  A corrupt file is
    logged and reset to defaults instead of raising.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        """Load settings and profiles, creating ``~/.curlftp/`` if necessary."""
        self._base = base_dir or Path.home() / ".curlftp"
        self._config_path = self._base / "config.json"
        self._profiles_path = self._base / "profiles.json"
        self._base.mkdir(parents=True, exist_ok=True)

        stored = self._read_json(self._config_path, dict, {})
        unknown = set(stored) - set(DEFAULT_CONFIG)
        if unknown:
            logger.debug("Ignoring unknown settings: %s", ", ".join(sorted(unknown)))
        self._config: dict[str, Any] = dict(DEFAULT_CONFIG)
        self._config.update((k, v) for k, v in stored.items() if k in DEFAULT_CONFIG)
        if stored != self._config:
            self._write_json(self._config_path, self._config)

        # Keyed by profile name, in insertion order.
        self._profiles: dict[str, dict[str, Any]] = {
            profile["name"]: profile
            for profile in self._read_json(self._profiles_path, list, [])
            if isinstance(profile, dict) and profile.get("name")
        }

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _write_json(self, path: Path, data: Any) -> None:
        """Replace *path* with *data* through a temp file."""
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            logger.error("Failed to write %s: %s", path, exc)
            raise

    def _read_json(self, path: Path, root_type: type, empty: Any) -> Any:
        """Return the JSON document at *path*, or *empty* if missing or corrupt.

        A corrupt file is overwritten with *empty*.
        """
        if not path.exists():
            return empty
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(loaded, root_type):
                raise ValueError(f"{path.name} root must be a JSON {root_type.__name__}")
            return loaded
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Corrupt %s (%s), resetting it", path.name, exc)
            self._write_json(path, empty)
            return empty

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Return the setting *key*.

        Raises:
            KeyError: If *key* is not a known setting.
        """
        return self._config[key]

    def update(self, **changes: Any) -> None:
        """Change one or more settings and persist them in a single write.

        Raises:
            KeyError: If a key is not a known setting; nothing is changed.
        """
        unknown = set(changes) - set(DEFAULT_CONFIG)
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")
        self._config.update(changes)
        self._write_json(self._config_path, self._config)
        logger.debug("Settings updated: %s", ", ".join(sorted(changes)))

    def session_settings(self) -> Settings:
        """Session feature switches built from the stored settings."""
        return Settings(
            enable_log=bool(self._config["enable_log"]),
            enable_ssh=bool(self._config["enable_ssh"]),
            enable_trace=bool(self._config["enable_trace"]),
        )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def profile_names(self) -> list[str]:
        return list(self._profiles)

    def get_profile(self, name: str) -> dict[str, Any] | None:
        profile = self._profiles.get(name)
        return dict(profile) if profile is not None else None

    def save_profile(self, profile: dict[str, Any]) -> None:
        """Add or replace the server profile named ``profile["name"]``.

        A ``password`` key, if present, is dropped before writing.

        Raises:
            ValueError: If the profile has no name or an unknown protocol.
        """
        name = profile.get("name")
        if not name:
            raise ValueError("Profile must have a non-empty 'name' field")
        Protocol(profile.get("protocol", Protocol.FTP.value))

        self._profiles[name] = {k: v for k, v in profile.items() if k != "password"}
        self._write_json(self._profiles_path, list(self._profiles.values()))
        logger.info("Profile saved: %s", name)

    def delete_profile(self, name: str) -> bool:
        """Delete the profile *name*; returns False if there is none."""
        if self._profiles.pop(name, None) is None:
            logger.warning("delete_profile: profile not found: %s", name)
            return False
        self._write_json(self._profiles_path, list(self._profiles.values()))
        logger.info("Profile deleted: %s", name)
        return True

    # ------------------------------------------------------------------
    # Client wiring
    # ------------------------------------------------------------------

    def configure_client(self, client: "FTPClient", profile_name: str, password: str = "") -> bool:
        """Apply the stored settings to *client* and open the profile's session.

        Returns the result of ``client.init_session``, or False when the
        profile does not exist.
        """
        profile = self.get_profile(profile_name)
        if profile is None:
            logger.warning("configure_client: profile not found: %s", profile_name)
            return False

        client.set_timeout(int(self._config["timeout"]))
        client.set_active(bool(self._config["active_mode"]))
        client.set_no_signal(bool(self._config["no_signal"]))
        client.set_proxy(self._config["proxy"])
        if self._config["trace_log_directory"]:
            client.set_trace_log_directory(self._config["trace_log_directory"])

        for key, setter in _PROFILE_FILE_SETTERS.items():
            if profile.get(key):
                getattr(client, setter)(profile[key])
        if profile.get("ssh_public_key_file") or profile.get("ssh_private_key_file"):
            client.set_ssh_key_files(
                profile.get("ssh_public_key_file", ""),
                profile.get("ssh_private_key_file", ""),
            )

        return client.init_session(
            profile.get("host", ""),
            int(profile.get("port", 0)),
            profile.get("login", ""),
            password,
            Protocol(profile.get("protocol", Protocol.FTP.value)),
            self.session_settings(),
        )
