"""
Wire-level constants of the API key protocol.
"""

import re
import uuid

# Sole signature algorithm issued and accepted
ALG = "RS256"

VERSION_PREFIX = "apikey-v"
VERSION_NUMBER = 1
VERSION = f"{VERSION_PREFIX}{VERSION_NUMBER}"

VERSION_PATTERN = re.compile(rf"^{re.escape(VERSION_PREFIX)}([0-9]{{1,3}})\Z")

# Published below each per-key issuer URL
JWKS_PATH = ".well-known/jwks.json"

RSA_KEY_SIZE = 2048


def is_valid_kid(candidate: str) -> bool:
    """Return True when ``candidate`` is a canonical hyphenated UUID string."""
    try:
        parsed = uuid.UUID(candidate)
    except (TypeError, ValueError, AttributeError):
        return False
    return str(parsed) == candidate.lower()
