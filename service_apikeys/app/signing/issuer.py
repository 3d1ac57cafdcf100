"""
API key issuance.

Every API key is a JWT signed by its own RSA key pair. The private half is
created, used once and dropped inside ``_sign_with_ephemeral_key``; only the
public JWK leaves this module, to be published under the key's issuer URL.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwk, jwt
from uuid6 import uuid7

from shared.errors import ApiKeyError, IncorrectUsageError, SigningError, UnknownError
from shared.logging import get_logger
from shared.urls import compose_url
from ..protocol import ALG, RSA_KEY_SIZE, VERSION

logger = get_logger("apikeys.signing")


@dataclass(frozen=True)
class CreateApiKeyOptions:
    """Protocol-managed inputs of an API key."""

    subject: str
    base_issuer_url: str
    audience: str
    expires_at: datetime


@dataclass(frozen=True)
class ApiKeyResult:
    """Public artifacts of a freshly issued API key."""

    jwk: Dict[str, Any]
    token: str = field(repr=False)
    kid: str


def _get_subject(options: CreateApiKeyOptions) -> str:
    if not isinstance(options.subject, str) or not options.subject:
        raise IncorrectUsageError("subject must be a non-empty string")
    return options.subject


def _get_expires_at(expires_at: datetime) -> int:
    if not isinstance(expires_at, datetime):
        raise IncorrectUsageError("expires_at must be a datetime")
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    timestamp = expires_at.timestamp()
    # Only instants before the epoch are rejected; an already expired key
    # can still be issued.
    if timestamp < 0:
        raise IncorrectUsageError("expires_at must not be before the Unix epoch")
    return math.floor(timestamp)


def _get_base_issuer(base_issuer_url: str) -> str:
    if not isinstance(base_issuer_url, str):
        raise IncorrectUsageError("base_issuer_url must be a string")
    parts = urlsplit(base_issuer_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise IncorrectUsageError("base_issuer_url must be an absolute http(s) URL")
    return base_issuer_url


def _get_claims(claims: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if claims is None:
        return {}
    if not isinstance(claims, Mapping):
        raise IncorrectUsageError("claims must be a mapping")
    return dict(claims)


def _sign_with_ephemeral_key(payload: Dict[str, Any], kid: str) -> Tuple[str, Dict[str, Any]]:
    """Sign ``payload`` with a brand-new key pair and return (token, public JWK).

    Runs in a worker thread. The private key exists only in this frame.
    """
    try:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    except Exception as exc:
        raise SigningError("Failed to generate key pair") from exc

    try:
        public_key = private_key.public_key()
        signing_key = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except Exception as exc:
        raise SigningError("Failed to generate key pair") from exc.with_traceback(None)
    finally:
        del private_key

    try:
        token = jwt.encode(
            {**payload, "iat": int(time.time())},
            signing_key,
            algorithm=ALG,
            headers={"kid": kid},
        )
    except Exception as exc:
        # the signing frames hold the PEM as a local
        raise SigningError("Failed to sign JWT") from exc.with_traceback(None)
    finally:
        del signing_key

    try:
        public_jwk = jwk.construct(public_key, ALG).to_dict()
    except Exception as exc:
        raise SigningError("Failed to generate JWK") from exc
    public_jwk["kid"] = kid

    return token, public_jwk


async def create_api_key(
    claims: Optional[Mapping[str, Any]],
    options: CreateApiKeyOptions,
) -> ApiKeyResult:
    """Issue a new API key for ``options.subject``.

    ``claims`` are embedded in the token; ``sub``, ``iss``, ``aud``, ``exp``,
    ``ver`` and ``iat`` are always set by the protocol and cannot be
    overridden. Raises ``IncorrectUsageError`` for invalid options,
    ``SigningError`` when the cryptography fails and ``UnknownError`` for
    anything else.
    """
    try:
        subject = _get_subject(options)
        exp = _get_expires_at(options.expires_at)
        base_issuer_url = _get_base_issuer(options.base_issuer_url)
        extra_claims = _get_claims(claims)

        kid = str(uuid7())
        iss = compose_url(base_issuer_url, kid)
        overrides = {"sub": subject, "iss": iss, "aud": options.audience, "exp": exp}
        payload = {**extra_claims, **overrides, "ver": VERSION}

        # Key generation is CPU bound and may block on entropy
        token, public_jwk = await asyncio.to_thread(_sign_with_ephemeral_key, payload, kid)

        logger.info("API key issued", kid=kid, sub=subject, exp=exp)
        return ApiKeyResult(jwk=public_jwk, token=token, kid=kid)
    except ApiKeyError:
        raise
    except Exception as exc:
        logger.error("Failed to create API key", error=str(exc))
        raise UnknownError("Failed to create API key") from exc
