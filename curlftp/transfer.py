"""Recursive wildcard download for curlftp.

Handles ``download_wildcard`` with:
- One wildcard request per directory level, entries streamed through hooks
- Local directory structure mirrored as directories are discovered
- Depth-first recursion in discovery order when the pattern ends in ``/*``
- Partial failures recorded per subtree while siblings keep going
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, TYPE_CHECKING, Optional

import pycurl

from curlftp.engine import (
    E_OK,
    E_REMOTE_FILE_NOT_FOUND,
    ENTRY_BEGIN_FAIL,
    ENTRY_BEGIN_OK,
    ENTRY_END_OK,
)
from curlftp.errors import (
    FTPClientError,
    InvalidArgumentError,
    LocalIOError,
    PartialFailureError,
    RemoteTransferError,
    TargetNotFoundError,
)
from curlftp.listing import EntryType, RemoteEntry
from curlftp.utils.path_helpers import is_match_all, wildcard_base

if TYPE_CHECKING:
    from curlftp.client import FTPClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# WildcardTransferState
# ---------------------------------------------------------------------------


@dataclass
class WildcardTransferState:
    """Per-level state shared by the entry hooks of one wildcard request."""

    output_dir: Path
    current_file: Optional[IO[bytes]] = None
    discovered_dirs: list[str] = field(default_factory=list)
    error: Optional[OSError] = None

    def on_entry_begin(self, entry: RemoteEntry, remains: int) -> int:
        """Create the local directory or open the local file for *entry*."""
        logger.debug("Entry %s (%s), %d remaining", entry.filename, entry.filetype.name, remains)
        target = self.output_dir / entry.filename

        if entry.filetype is EntryType.DIRECTORY:
            self.discovered_dirs.append(entry.filename)
            try:
                target.mkdir(exist_ok=True)
            except OSError as exc:
                logger.error("Cannot create local directory %s: %s", target, exc)
                self.error = exc
                return ENTRY_BEGIN_FAIL

        elif entry.filetype is EntryType.FILE:
            try:
                self.current_file = open(target, "wb")
            except OSError as exc:
                logger.error("Cannot open local file %s: %s", target, exc)
                self.error = exc
                return ENTRY_BEGIN_FAIL

        else:
            logger.debug("Ignoring %s entry %s", entry.filetype.name, entry.filename)

        return ENTRY_BEGIN_OK

    def on_data(self, data: bytes) -> int:
        """Write *data* to the open file; 0 tells the engine to skip the entry."""
        if self.current_file is None:
            return 0
        return self.current_file.write(data)

    def on_entry_end(self) -> int:
        self.close()
        return ENTRY_END_OK

    def close(self) -> None:
        """Close the file of an entry that never reached entry-end."""
        if self.current_file is not None:
            self.current_file.close()
            self.current_file = None


# ---------------------------------------------------------------------------
# WildcardDownloader
# ---------------------------------------------------------------------------


class WildcardDownloader:
    """Downloads remote wildcard matches, recursing into subdirectories."""

    def __init__(self, client: "FTPClient") -> None:
        self._client = client

    def download(self, local_dir: str | os.PathLike, remote_wildcard: str) -> bool:
        """Download *remote_wildcard* into *local_dir*.

        Returns True when every level succeeded.

        Raises:
            InvalidArgumentError: If either argument is empty.
            NotInitializedError: If the client has no live session.
            TargetNotFoundError: If *local_dir* is not an existing directory.
            LocalIOError: If a local file or directory could not be created.
            RemoteTransferError: If the wildcard request itself failed.
            PartialFailureError: If some subdirectories failed to download.
        """
        if not local_dir or not remote_wildcard:
            raise InvalidArgumentError("Empty local folder or remote wildcard")
        engine = self._client.prepare_request()

        output_dir = Path(local_dir)
        if not output_dir.is_dir():
            raise TargetNotFoundError(f"Local folder {output_dir} does not exist")

        state = WildcardTransferState(output_dir)
        engine.setopt(pycurl.URL, self._client.build_url(remote_wildcard))
        engine.set_wildcard_match(True)
        engine.set_entry_hooks(state.on_entry_begin, state.on_entry_end)
        engine.setopt(pycurl.WRITEFUNCTION, state.on_data)

        try:
            code = self._client.perform()
        finally:
            state.close()

        if code not in (E_OK, E_REMOTE_FILE_NOT_FOUND):
            if state.error is not None:
                raise LocalIOError(
                    f"Local I/O failed while downloading {remote_wildcard}: {state.error}"
                )
            raise RemoteTransferError(
                f"Unable to download {remote_wildcard}", code, engine.errstr()
            )
        if code == E_REMOTE_FILE_NOT_FOUND:
            logger.debug("Nothing matches %s", remote_wildcard)

        if not is_match_all(remote_wildcard) or not state.discovered_dirs:
            return True

        base = wildcard_base(remote_wildcard)
        failed: list[str] = []
        for name in state.discovered_dirs:
            sub_pattern = f"{base}{name}/*"
            if not self._download_branch(output_dir / name, sub_pattern):
                failed.append(sub_pattern)

        if failed:
            raise PartialFailureError(
                f"{len(failed)} of {len(state.discovered_dirs)} subfolders of "
                f"{remote_wildcard} failed: {', '.join(failed)}",
                failed,
            )
        return True

    def _download_branch(self, output_dir: Path, pattern: str) -> bool:
        """Recurse into one subdirectory; failures are reported, not raised."""
        try:
            return self.download(output_dir, pattern)
        except FTPClientError as exc:
            self._client.report(str(exc))
            return False
