"""Transport engine: a resettable wrapper around ``pycurl.Curl``.

The engine exposes the small surface the client drives (``reset``,
``setopt``, ``perform``, ``getinfo``) and turns ``pycurl.error`` into plain
integer result codes so callers can interpret them without exception
handling.

Wildcard transfers
------------------
libcurl reports each entry of a wildcard transfer through chunk-begin and
chunk-end callbacks, which pycurl does not expose.  In wildcard mode
:meth:`CurlEngine.perform` therefore walks the match itself:

1. list the folder part of the URL and parse the listing,
2. keep the names matching the decoded last URL segment (``fnmatch`` rules),
3. for each match call the entry-begin hook, fetch regular files through the
   registered write callback, then call the entry-end hook.

Every option set before ``perform`` is replayed on each of those requests.
"""

from __future__ import annotations

import fnmatch
import io
import logging
from typing import Any, Callable, Optional
from urllib.parse import quote, unquote

import pycurl

from curlftp.listing import EntryType, RemoteEntry, parse_listing

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Result codes and hook verdicts
# ---------------------------------------------------------------------------

E_OK = 0
E_WRITE_ERROR = pycurl.E_WRITE_ERROR
E_ABORTED_BY_CALLBACK = pycurl.E_ABORTED_BY_CALLBACK
E_REMOTE_FILE_NOT_FOUND = pycurl.E_REMOTE_FILE_NOT_FOUND
E_CHUNK_FAILED = pycurl.E_CHUNK_FAILED

ENTRY_BEGIN_OK = 0
ENTRY_BEGIN_FAIL = 1
ENTRY_BEGIN_SKIP = 2

ENTRY_END_OK = 0
ENTRY_END_FAIL = 1

EntryBeginCallback = Callable[[RemoteEntry, int], int]
EntryEndCallback = Callable[[], int]

# Options that differ between the listing request and each entry request.
_PER_REQUEST_OPTIONS = frozenset({pycurl.URL, pycurl.WRITEFUNCTION})


class CurlEngine:
    """One libcurl easy handle plus the options applied to it since the last reset."""

    def __init__(
        self,
        curl_factory: Callable[[], Any] = pycurl.Curl,
        encoding: str = "utf-8",
    ) -> None:
        """Create the underlying handle.

        Args:
            curl_factory: Callable returning a ``pycurl.Curl``-compatible object.
            encoding: Encoding used to decode directory listings.
        """
        self._curl = curl_factory()
        self.encoding = encoding
        self._options: dict[int, Any] = {}
        self._wildcard = False
        self._entry_begin: Optional[EntryBeginCallback] = None
        self._entry_end: Optional[EntryEndCallback] = None
        self._last_error = ""

    # ------------------------------------------------------------------
    # Option handling
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop every option, callback and wildcard setting."""
        self._curl.reset()
        self._options.clear()
        self._wildcard = False
        self._entry_begin = None
        self._entry_end = None
        self._last_error = ""

    def setopt(self, option: int, value: Any) -> None:
        """Set a pycurl option on the handle and remember it for replay."""
        self._options[option] = value
        self._curl.setopt(option, value)

    def set_wildcard_match(self, enabled: bool) -> None:
        """Treat the last URL segment as a pattern on the next perform."""
        self._wildcard = enabled

    def set_entry_hooks(
        self,
        begin: Optional[EntryBeginCallback],
        end: Optional[EntryEndCallback],
    ) -> None:
        """Register the per-entry hooks used in wildcard mode.

        ``begin(entry, remains)`` returns one of ``ENTRY_BEGIN_OK``,
        ``ENTRY_BEGIN_FAIL`` (abort the whole request) or ``ENTRY_BEGIN_SKIP``.
        ``end()`` returns ``ENTRY_END_OK`` to continue.
        """
        self._entry_begin = begin
        self._entry_end = end

    def getinfo(self, info: int) -> Any:
        return self._curl.getinfo(info)

    def errstr(self) -> str:
        """Error text of the last failed perform, or an empty string."""
        return self._last_error

    def close(self) -> None:
        self._curl.close()

    # ------------------------------------------------------------------
    # Perform
    # ------------------------------------------------------------------

    def perform(self) -> int:
        """Run the configured request and return a libcurl result code."""
        if self._wildcard:
            return self._perform_wildcard()
        return self._perform_once()

    def _perform_once(self) -> int:
        try:
            self._curl.perform()
        except pycurl.error as exc:
            code = exc.args[0] if exc.args else E_CHUNK_FAILED
            self._last_error = exc.args[1] if len(exc.args) > 1 else str(exc)
            return code
        self._last_error = ""
        return E_OK

    def _prepare(self, url: str, write: Callable[[bytes], Any]) -> None:
        """Reset the handle and replay stored options for a sub-request."""
        self._curl.reset()
        for option, value in self._options.items():
            if option not in _PER_REQUEST_OPTIONS:
                self._curl.setopt(option, value)
        self._curl.setopt(pycurl.URL, url)
        self._curl.setopt(pycurl.WRITEFUNCTION, write)

    def _list_matches(self, folder_url: str, pattern: str) -> tuple[int, list[RemoteEntry]]:
        buffer = io.BytesIO()
        self._prepare(folder_url, buffer.write)
        code = self._perform_once()
        if code != E_OK:
            return code, []
        text = buffer.getvalue().decode(self.encoding, errors="replace")
        matches = [
            entry
            for entry in parse_listing(text)
            if entry.filename not in (".", "..")
            and fnmatch.fnmatchcase(entry.filename, pattern)
        ]
        logger.debug("%d entries of %s match %r", len(matches), folder_url, pattern)
        return E_OK, matches

    def _fetch_entry(self, url: str) -> int:
        """Download one matched file through the registered write callback.

        A callback that consumes zero bytes skips the rest of the entry.
        """
        write = self._options.get(pycurl.WRITEFUNCTION)
        skipped = False

        def _write(data: bytes) -> Any:
            nonlocal skipped
            if write is None:
                return None
            consumed = write(data)
            if consumed == 0:
                skipped = True
            return consumed

        self._prepare(url, _write)
        code = self._perform_once()
        if skipped and code == E_WRITE_ERROR:
            logger.debug("Entry %s skipped by write callback", url)
            return E_OK
        return code

    def _perform_wildcard(self) -> int:
        url = self._options.get(pycurl.URL, "")
        head, sep, last_segment = url.rpartition("/")
        folder_url = head + sep
        pattern = unquote(last_segment)

        code, entries = self._list_matches(folder_url, pattern)
        if code != E_OK:
            return code
        if not entries:
            self._last_error = f"No remote entry matches {pattern!r}"
            return E_REMOTE_FILE_NOT_FOUND

        total = len(entries)
        for index, entry in enumerate(entries):
            verdict = ENTRY_BEGIN_OK
            if self._entry_begin is not None:
                verdict = self._entry_begin(entry, total - index - 1)
            if verdict == ENTRY_BEGIN_FAIL:
                self._last_error = f"Entry callback failed for {entry.filename!r}"
                return E_CHUNK_FAILED

            if verdict == ENTRY_BEGIN_OK and entry.filetype is EntryType.FILE:
                code = self._fetch_entry(folder_url + quote(entry.filename, safe=""))
                if code != E_OK:
                    return code

            if self._entry_end is not None and self._entry_end() != ENTRY_END_OK:
                self._last_error = f"Entry end callback failed for {entry.filename!r}"
                return E_CHUNK_FAILED

        self._last_error = ""
        return E_OK
