"""libcurl verbose trace, routed to logging and optionally to a trace file."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import IO, Any, Optional

import pycurl

logger = logging.getLogger("curlftp.trace")

_PREFIXES = {
    pycurl.INFOTYPE_TEXT: "# Information : ",
    pycurl.INFOTYPE_HEADER_OUT: "-> Sending header : ",
    pycurl.INFOTYPE_DATA_OUT: "-> Sending data : ",
    pycurl.INFOTYPE_SSL_DATA_OUT: "-> Sending SSL data : ",
    pycurl.INFOTYPE_HEADER_IN: "<- Receiving header : ",
    pycurl.INFOTYPE_DATA_IN: "<- Receiving unencrypted data : ",
    pycurl.INFOTYPE_SSL_DATA_IN: "<- Receiving SSL data : ",
}

_SEPARATOR = "###########################################\n"


class CurlTracer:
    """Collects libcurl debug output for the duration of one request.

    With a *directory*, records are also appended to an hourly
    ``TraceLog_YYYYMMDD_HH.txt`` file in it.
    """

    def __init__(self, directory: str | Path | None = None) -> None:
        self.directory = Path(directory) if directory else None
        self._file: Optional[IO[str]] = None

    def trace_path(self) -> Path | None:
        """Path of the trace file for the current hour, or None."""
        if self.directory is None:
            return None
        return self.directory / f"TraceLog_{time.strftime('%Y%m%d_%H')}.txt"

    def attach(self, engine: Any) -> None:
        """Turn on verbose output for the request about to run on *engine*."""
        engine.setopt(pycurl.VERBOSE, 1)
        engine.setopt(pycurl.DEBUGFUNCTION, self.record)
        path = self.trace_path()
        if path is not None and self._file is None:
            try:
                self._file = open(path, "a", encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Cannot open trace file %s: %s", path, exc)

    def record(self, info_type: int, payload: bytes) -> None:
        """``DEBUGFUNCTION`` callback."""
        text = payload.decode("utf-8", errors="replace")
        line = _PREFIXES.get(info_type, "") + text
        logger.debug("%s", line.rstrip("\r\n"))
        if self._file is not None:
            self._file.write(line)

    def detach(self) -> None:
        """Close the trace file after the request, if one is open."""
        if self._file is None:
            return
        try:
            self._file.write(_SEPARATOR)
        finally:
            self._file.close()
            self._file = None
