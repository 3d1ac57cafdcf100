"""
Fixtures shared by the API key service tests.
"""

import base64
import json
import time
from typing import Any, Dict, Optional, Sequence

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk as jose_jwk
from uuid6 import uuid7

from service_apikeys.app.protocol import VERSION

BASE_ISSUER = "https://example.com"
AUDIENCE = "api-key"


def _b64(data: Dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _unb64(segment: str) -> Dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))


@pytest.fixture(scope="session")
def rsa_private_key():
    """Signing key used to forge tokens in tests."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def other_private_key():
    """Key that never signed anything the tests verify."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def jwks_for():
    """Build a JWKS document holding the public half of ``private_key``."""
    def _jwks(private_key, kid: str) -> Dict[str, Any]:
        public = jose_jwk.construct(private_key.public_key(), "RS256").to_dict()
        public["kid"] = kid
        return {"keys": [public]}
    return _jwks


@pytest.fixture
def token_factory(rsa_private_key):
    """Sign protocol-shaped tokens with arbitrary claim values."""
    def _make(
        kid: Optional[str] = None,
        header_kid: Optional[str] = None,
        iss: Optional[str] = None,
        ver: str = VERSION,
        exp_delta: int = 3600,
        extra: Optional[Dict[str, Any]] = None,
        drop: Sequence[str] = (),
        key=None,
    ):
        kid = kid or str(uuid7())
        now = int(time.time())
        claims = {
            "sub": "user-1",
            "iss": iss if iss is not None else f"{BASE_ISSUER}/{kid}",
            "aud": AUDIENCE,
            "exp": now + exp_delta,
            "iat": now,
            "ver": ver,
            **(extra or {}),
        }
        for name in drop:
            claims.pop(name, None)
        token = jwt.encode(
            claims,
            key or rsa_private_key,
            algorithm="RS256",
            headers={"kid": header_kid or kid},
        )
        return token, kid
    return _make


@pytest.fixture
def raw_token():
    """Assemble an unsigned token from arbitrary header and claims."""
    def _raw(header: Dict[str, Any], claims: Any) -> str:
        payload = claims if isinstance(claims, str) else _b64(claims)
        return f"{_b64(header)}.{payload}.c2lnbmF0dXJl"
    return _raw


@pytest.fixture
def replace_header():
    """Rewrite header fields of a token, keeping payload and signature."""
    def _replace(token: str, **changes) -> str:
        header, payload, signature = token.split(".")
        return f"{_b64({**_unb64(header), **changes})}.{payload}.{signature}"
    return _replace
