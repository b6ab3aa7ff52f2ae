"""Checks applied before anything reaches the database."""

import re
from urllib.parse import urlsplit

_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_valid_identifier(name) -> bool:
    """True if ``name`` may be embedded literally (double-quoted) in SQL."""
    return isinstance(name, str) and _IDENTIFIER_RE.fullmatch(name) is not None


def is_valid_target_descriptor(descriptor) -> bool:
    """True if ``descriptor`` is a postgres:// or postgresql:// URI."""
    if not isinstance(descriptor, str) or not descriptor.strip():
        return False
    try:
        scheme = urlsplit(descriptor.strip()).scheme
    except ValueError:
        return False
    return scheme.lower().startswith("postgres")


def redact_descriptor(descriptor: str) -> str:
    """Replace the password in a connection URI with ``***``.

    The credentials end at the last ``@``, so passwords containing ``/`` or
    ``@`` are masked whole.
    """
    descriptor = descriptor or ""
    scheme, sep, rest = descriptor.partition("://")
    userinfo, at, location = rest.rpartition("@")
    if not sep or not at or ":" not in userinfo:
        return descriptor
    user = userinfo.split(":", 1)[0]
    return f"{scheme}://{user}:***@{location}"
