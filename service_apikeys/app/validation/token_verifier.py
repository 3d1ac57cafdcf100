"""
API key authentication.

Verification runs a fixed chain: decode without verifying, check that the
issuer sits under the configured base issuer and ends in a UUID key id, check
that the header ``kid`` matches it, check the protocol version, and only then
resolve the public key and verify the signature and standard claims.

Structural failures raise ``MalformedTokenError`` (401). Anything that goes
wrong once the token shape is known good raises ``UnauthorizedError`` (403),
so clients cannot tell a bad signature from an unknown or revoked key.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from jose import jwt

from shared.errors import ApiKeyError, MalformedTokenError, UnauthorizedError, UnknownError
from shared.logging import get_logger
from shared.urls import ensure_trailing_slash
from ..jwks.base import KeyIdentifier, Resolver
from ..protocol import ALG, VERSION_NUMBER, VERSION_PATTERN, is_valid_kid

logger = get_logger("apikeys.validation")


@dataclass(frozen=True)
class VerifyOptions:
    """Additional standard-claim checks applied after the signature check.

    ``options`` is passed through to python-jose (``verify_exp``,
    ``require_sub`` and friends); signature verification cannot be disabled.
    """

    audience: Optional[str] = None
    issuer: Optional[str] = None
    subject: Optional[str] = None
    leeway: int = 0
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthenticateOptions:
    base_issuer_url: str
    resolver: Resolver
    verify_options: VerifyOptions = field(default_factory=VerifyOptions)


@dataclass(frozen=True)
class UnverifiedToken:
    """Header and claims of a token whose structure passed every check."""

    header: Dict[str, Any]
    claims: Dict[str, Any]
    kid: str
    iss: str
    version: int


def _decode_unverified(token: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.get_unverified_claims(token)
    except Exception as exc:
        raise MalformedTokenError("Invalid token") from exc
    return header, claims


def validate_issuer(iss: Any, base_issuer_url: str) -> Tuple[str, str]:
    """Return ``(kid, iss)`` for an issuer of the form ``<base>/<uuid>``."""
    if not isinstance(iss, str) or not iss:
        raise MalformedTokenError("Missing issuer in token")
    prefix = ensure_trailing_slash(base_issuer_url)
    if not iss.startswith(prefix):
        raise MalformedTokenError("Invalid issuer")
    issuer_kid = iss[len(prefix):]
    if not is_valid_kid(issuer_kid):
        raise MalformedTokenError("Invalid issuer")
    return issuer_kid, iss


def validate_kid(issuer_kid: str, header: Dict[str, Any]) -> str:
    if header.get("kid") != issuer_kid:
        raise MalformedTokenError("Mismatched kid compared to issuer")
    return issuer_kid


def validate_version(claims: Dict[str, Any]) -> int:
    """Accept any protocol version up to the one this verifier implements."""
    ver = claims.get("ver")
    if not isinstance(ver, str):
        raise MalformedTokenError("Invalid version")
    match = VERSION_PATTERN.match(ver)
    if match is None:
        raise MalformedTokenError("Invalid version")
    version = int(match.group(1))
    if version > VERSION_NUMBER:
        raise MalformedTokenError("Invalid version")
    return version


def inspect_token(token: str, base_issuer_url: str) -> UnverifiedToken:
    """Run the structural checks; raises ``MalformedTokenError``."""
    header, claims = _decode_unverified(token)
    issuer_kid, iss = validate_issuer(claims.get("iss"), base_issuer_url)
    kid = validate_kid(issuer_kid, header)
    version = validate_version(claims)
    return UnverifiedToken(header=header, claims=claims, kid=kid, iss=iss, version=version)


def should_authenticate(token: str, base_issuer_url: str) -> bool:
    """Return True when ``token`` looks like an API key issued under ``base_issuer_url``.

    Never raises. A True result is not authentication; call ``authenticate``.
    """
    try:
        inspect_token(token, base_issuer_url)
    except Exception:
        return False
    return True


def _decode_options(verify_options: VerifyOptions) -> Dict[str, Any]:
    options = {
        "verify_aud": verify_options.audience is not None,
        "leeway": verify_options.leeway,
        **verify_options.options,
    }
    options["verify_signature"] = True
    return options


async def authenticate(token: str, options: AuthenticateOptions) -> Dict[str, Any]:
    """Verify ``token`` and return its claims.

    Raises ``MalformedTokenError`` when the token cannot belong to this
    issuer, ``UnauthorizedError`` when it could but is not confirmed by the
    resolved public key.
    """
    try:
        unverified = inspect_token(token, options.base_issuer_url)
        identifier = KeyIdentifier(kid=unverified.kid, iss=unverified.iss)
        verify_options = options.verify_options

        try:
            accessor = options.resolver(identifier)
            key_set = await accessor(unverified.header)
            claims = jwt.decode(
                token,
                key_set,
                algorithms=[ALG],
                audience=verify_options.audience,
                issuer=verify_options.issuer,
                subject=verify_options.subject,
                options=_decode_options(verify_options),
            )
        except Exception as exc:
            logger.warning("API key verification failed", kid=unverified.kid, error=str(exc))
            raise UnauthorizedError("Failed to verify token") from exc

        logger.debug("API key verified", kid=unverified.kid, sub=claims.get("sub"))
        return claims
    except ApiKeyError:
        raise
    except Exception as exc:
        logger.error("Unexpected failure while authenticating API key", error=str(exc))
        raise UnknownError("Failed to authenticate API key") from exc
