"""Request URL construction for the FTP family of protocols.

libcurl needs every ``/`` doubled so a literal path is not confused with
protocol control sequences, e.g.::

    >>> build_url("127.0.0.1", Protocol.FTP, "documents/info.txt")
    'ftp://127.0.0.1//documents//info.txt'
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import quote

if TYPE_CHECKING:
    from curlftp.session import Protocol

_SCHEME_RE = re.compile(r"^(sftp|ftpes|ftps|ftp)://", re.IGNORECASE)


def split_scheme(url: str) -> tuple[str, str]:
    """Split *url* into ``(scheme_prefix, remainder)``.

    ``scheme_prefix`` keeps its original case and the trailing ``://``; it is
    empty when *url* does not start with a recognised scheme.
    """
    match = _SCHEME_RE.match(url)
    if match is None:
        return "", url
    return match.group(0), url[match.end():]


def quote_path(path: str) -> str:
    """Percent-encode each segment of *path*, keeping separators and ``*``.

    Remote names may hold characters that end or break a URL path (``#``,
    ``?``, ``%``, spaces).
    """
    return "/".join(quote(segment, safe="*") for segment in path.split("/"))


def build_url(server: str, protocol: Protocol, relative_path: str) -> str:
    """Return the request URL for *relative_path* on *server*.

    Path segments are percent-encoded and every separator after the scheme is
    doubled.  *server* is used as given.  The scheme of *protocol* is
    prepended only when *server* does not already carry one.
    """
    scheme, rest = split_scheme(f"{server}/{quote_path(relative_path)}")
    rest = rest.replace("/", "//")
    if not scheme:
        scheme = protocol.scheme
    return scheme + rest


def split_parent_and_leaf(
    server: str, protocol: Protocol, path: str
) -> tuple[str, str]:
    """Split *path* into the parent folder URL and the leaf name.

    Quote commands (``MKD``, ``RMD``, ``DELE``) must run against the parent
    folder with only the leaf as argument.  A path without a separator lives in
    the server root.
    """
    head, sep, leaf = path.rpartition("/")
    if not sep:
        return build_url(server, protocol, ""), path
    return build_url(server, protocol, head) + "//", leaf


def normalize_proxy(uri: str) -> str:
    """Prefix *uri* with ``http://`` unless it already names an HTTP scheme."""
    if not uri:
        return ""
    if uri[:4].upper() != "HTTP":
        return "http://" + uri
    return uri


def is_match_all(pattern: str) -> bool:
    """Return True if the last segment of *pattern* is exactly ``*``."""
    return pattern.rpartition("/")[2] == "*"


def wildcard_base(pattern: str) -> str:
    """Return *pattern* without its last segment, ending in ``/`` unless empty.

    >>> wildcard_base("root/*")
    'root/'
    >>> wildcard_base("*")
    ''
    """
    head, sep, _ = pattern.rpartition("/")
    return head + sep
