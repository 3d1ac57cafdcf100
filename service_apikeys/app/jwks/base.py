"""
Resolver contract between the token verifier and whatever serves public keys.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict


@dataclass(frozen=True)
class KeyIdentifier:
    """Identifies the single public key a token claims to be signed with."""

    kid: str
    iss: str


# Invoked with the unverified token header during signature verification;
# returns a JWKS document ({"keys": [...]}) and may perform I/O.
KeySetAccessor = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]

# Maps a key identifier to the accessor for its key set. Raising, here or in
# the accessor, means the key is unknown or revoked.
Resolver = Callable[[KeyIdentifier], KeySetAccessor]
