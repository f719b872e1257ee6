"""URL normalisation for source comparison and duplicate detection."""

from __future__ import annotations

from urllib.parse import parse_qsl, unquote, urlencode, urlsplit, urlunsplit

SYNTHESIS_MARKER = "multiple_sources_synthesis"
TRACKING_PREFIXES = ("utm_", "mc_", "fbclid", "gclid", "igshid")
_DEFAULT_PORTS = {"http": 80, "https": 443}


def _is_synthesis(url: str) -> bool:
    return url == SYNTHESIS_MARKER or url.startswith("synthesis:")


def _netloc(scheme: str, hostname: str, port: int | None) -> str:
    if port is None or _DEFAULT_PORTS.get(scheme) == port:
        return hostname
    return f"{hostname}:{port}"


def normalize_url(url: str) -> str:
    """Normalise *url* for equality checks.

    Lowercases scheme and host, drops default ports and the fragment,
    strips a trailing slash (except for the root path), decodes the path,
    and sorts query parameters. Synthesis markers and unparsable values
    come back unchanged.
    """
    if not url or not isinstance(url, str) or _is_synthesis(url):
        return url
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url
    if not parts.scheme or not parts.hostname:
        return url

    scheme = parts.scheme.lower()
    path = unquote(parts.path) or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    if not path.startswith("/"):
        path = "/" + path

    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit(
        (scheme, _netloc(scheme, parts.hostname.lower(), port), path, query, "")
    )


def urls_equal(a: str, b: str) -> bool:
    return normalize_url(a) == normalize_url(b)


def canonicalize_url(url: str | None) -> str | None:
    """Canonical form used to group duplicate sources.

    Goes further than ``normalize_url``: strips ``www.`` and common
    tracking parameters. Returns None for blank or unparsable input.
    """
    if not isinstance(url, str) or not url.strip():
        return None
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None

    scheme = parts.scheme.lower()
    host = parts.hostname.lower()
    if host.startswith("www."):
        host = host[4:]

    params = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not k.lower().startswith(TRACKING_PREFIXES)
    ]
    path = parts.path.rstrip("/") if len(parts.path) > 1 else parts.path
    return urlunsplit(
        (scheme, _netloc(scheme, host, port), path or "/", urlencode(sorted(params)), "")
    )


def extract_domain(url: str) -> str | None:
    try:
        host = urlsplit(url).hostname
    except (AttributeError, ValueError):
        return None
    return host.lower() if host else None


def is_homepage(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except (AttributeError, ValueError):
        return False
    return bool(parts.hostname) and parts.path in ("", "/")


def is_valid_url(url: str | None) -> bool:
    """True for http(s) URLs; synthesis markers are never valid sources."""
    if not url or not isinstance(url, str) or _is_synthesis(url):
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def truncate_url(url: str, max_length: int = 60) -> str:
    if not url or len(url) <= max_length:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url[: max_length - 3] + "..."
    domain = parts.hostname or ""
    available = max_length - len(domain) - 3
    if domain and available > 10 and len(parts.path) > available:
        return domain + parts.path[:available] + "..."
    return url[: max_length - 3] + "..."
