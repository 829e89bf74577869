"""Parsing of FTP ``LIST`` output into typed remote entries.

Both Unix ``ls -l`` style lines (also produced by libcurl for SFTP directory
listings) and MS-DOS / IIS style lines are understood.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum, auto

logger = logging.getLogger(__name__)

_DOS_LINE = re.compile(
    r"^(\d{2})-(\d{2})-(\d{2,4})\s+(\d{1,2}:\d{2})\s*([AaPp][Mm])?\s+(<DIR>|[\d,]+)\s+(.+)$"
)


class EntryType(Enum):
    """Kind of a remote directory entry."""

    FILE = auto()
    DIRECTORY = auto()
    SYMLINK = auto()
    DEVICE = auto()
    SOCKET = auto()
    NAMEDPIPE = auto()
    UNKNOWN = auto()


_UNIX_TYPES = {
    "-": EntryType.FILE,
    "d": EntryType.DIRECTORY,
    "l": EntryType.SYMLINK,
    "c": EntryType.DEVICE,
    "b": EntryType.DEVICE,
    "s": EntryType.SOCKET,
    "p": EntryType.NAMEDPIPE,
}


@dataclass
class RemoteEntry:
    """One entry reported by a remote directory listing."""

    filename: str
    filetype: EntryType
    size: int = 0
    permissions: str = ""
    raw: str = ""


def _parse_unix(line: str) -> RemoteEntry | None:
    parts = line.split(None, 8)
    if len(parts) < 9:
        return None
    perms = parts[0]
    filetype = _UNIX_TYPES.get(perms[0], EntryType.UNKNOWN)
    name = parts[8]
    if filetype is EntryType.SYMLINK and " -> " in name:
        name = name.split(" -> ", 1)[0]
    size = int(parts[4]) if parts[4].isdigit() else 0
    return RemoteEntry(
        filename=name,
        filetype=filetype,
        size=size,
        permissions=perms,
        raw=line,
    )


def _parse_dos(line: str) -> RemoteEntry | None:
    match = _DOS_LINE.match(line)
    if match is None:
        return None
    size_or_dir, name = match.group(6), match.group(7)
    if size_or_dir == "<DIR>":
        return RemoteEntry(filename=name, filetype=EntryType.DIRECTORY, raw=line)
    return RemoteEntry(
        filename=name,
        filetype=EntryType.FILE,
        size=int(size_or_dir.replace(",", "")),
        raw=line,
    )


def parse_list_line(line: str) -> RemoteEntry | None:
    """Parse a single listing line, or return None if it is not an entry."""
    line = line.rstrip("\r\n")
    if not line.strip() or line.lower().startswith("total "):
        return None
    if line[0].isdigit():
        return _parse_dos(line)
    return _parse_unix(line)


def parse_listing(text: str) -> list[RemoteEntry]:
    """Parse a full ``LIST`` response, preserving server order."""
    entries: list[RemoteEntry] = []
    for line in text.splitlines():
        entry = parse_list_line(line)
        if entry is None:
            if line.strip() and not line.lower().startswith("total "):
                logger.debug("Ignoring unparseable listing line: %r", line)
            continue
        entries.append(entry)
    return entries
