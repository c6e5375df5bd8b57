"""Origin normalization shared by the channel, config and HTTP transport."""

from __future__ import annotations

from urllib.parse import urlparse

_ALLOWED_SCHEMES = frozenset({"http", "https"})
_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_origin(value: object) -> str | None:
    """Reduce ``value`` to ``scheme://host[:port]`` or return ``None``.

    Only ``http`` and ``https`` are accepted. Default ports are dropped so the
    result compares equal to what a browser reports as ``event.origin``. A
    trailing ``/`` is tolerated; any other path, a query, a fragment or
    userinfo makes the value invalid.
    """
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None

    parsed = urlparse(candidate)
    scheme = parsed.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        return None
    if not parsed.hostname:
        return None
    if parsed.username or parsed.password:
        return None
    if parsed.query or parsed.fragment or parsed.params:
        return None
    if parsed.path not in ("", "/"):
        return None

    try:
        port = parsed.port
    except ValueError:
        return None

    host = parsed.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"
