"""
URL helpers shared by the issuer, the verifier and the JWKS resolvers.
"""

from urllib.parse import urlsplit, urlunsplit


def compose_url(base: str, relative_path: str) -> str:
    """Append ``relative_path`` to the path of ``base``.

    Query string and fragment of ``base`` are dropped; scheme, credentials,
    host and port are kept. Exactly one ``/`` separates the two parts, and an
    empty ``relative_path`` yields ``base`` with a trailing ``/``.

    >>> compose_url("https://user:pw@example.com:8080/keys?x=1#y", "/abc")
    'https://user:pw@example.com:8080/keys/abc'
    """
    parts = urlsplit(base)
    base_path = parts.path.rstrip("/")
    path = f"{base_path}/{relative_path.lstrip('/')}"
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def ensure_trailing_slash(base: str) -> str:
    """Return the canonical prefix every issuer under ``base`` starts with."""
    return compose_url(base, "")
