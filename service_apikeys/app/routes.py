"""
FastAPI routers for the API Key Service.

- create_api_key_router: create, list, get and revoke the caller's keys.
- create_jwks_router: publish ``/{kid}/.well-known/jwks.json`` for live keys.
- ApiKeyAuthenticator: dependency authenticating ``Authorization: Bearer``
  API keys and deferring every other bearer token to other authenticators.

Errors are raised as ApiKeyError and rendered by the service's exception
handlers.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shared.errors import ApiKeyError, InvalidInputError, NotFoundError
from shared.logging import get_logger, set_user_context
from shared.metrics import MetricsCollector
from .jwks.resolver import load_key_set
from .persistence.base import KeyRecord, KeyStore
from .protocol import is_valid_kid
from .signing.issuer import CreateApiKeyOptions, create_api_key
from .validation.token_verifier import AuthenticateOptions, authenticate, should_authenticate

logger = get_logger("apikeys.routes")


class CreateApiKeyRequest(BaseModel):
    """Body of a create request."""

    expires_at: datetime
    claims: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CreateApiKeyResponse(BaseModel):
    api_key: str
    kid: str


GetUserId = Callable[[Request], Awaitable[str]]
ParseCreateRequest = Callable[[Request], Awaitable[CreateApiKeyRequest]]


async def parse_create_api_key_request(request: Request) -> CreateApiKeyRequest:
    """Default body parser for create requests."""
    try:
        body = await request.json()
        return CreateApiKeyRequest.model_validate(body)
    except ValueError as exc:
        raise InvalidInputError("Invalid create API key request") from exc


def _ensure_kid(kid: str) -> str:
    if not is_valid_kid(kid):
        raise NotFoundError("Invalid API key ID")
    return kid


def _count(metrics: Optional[MetricsCollector], name: str, **labels) -> None:
    if metrics is not None:
        metrics.increment_counter(name, **labels)


def create_api_key_router(
    *,
    get_user_id: GetUserId,
    store: KeyStore,
    base_issuer_url: str,
    audience: str,
    parse_create_request: ParseCreateRequest = parse_create_api_key_request,
    metrics: Optional[MetricsCollector] = None,
) -> APIRouter:
    """Routes managing the caller's API keys."""
    router = APIRouter()

    async def _get_owned_record(request: Request, kid: str) -> KeyRecord:
        user_id = await get_user_id(request)
        record = await store.get_by_key_id(_ensure_kid(kid))
        if record is None or record.user_id != user_id:
            raise NotFoundError("API key not found")
        return record

    @router.post("", response_model=CreateApiKeyResponse)
    async def create_key(request: Request):
        """Issue a key for the caller and store its public half."""
        user_id = await get_user_id(request)
        body = await parse_create_request(request)
        result = await create_api_key(
            body.claims,
            CreateApiKeyOptions(
                subject=user_id,
                base_issuer_url=base_issuer_url,
                audience=audience,
                expires_at=body.expires_at,
            ),
        )
        await store.insert(KeyRecord(
            kid=result.kid,
            user_id=user_id,
            revoked=False,
            jwk=result.jwk,
            metadata=body.metadata,
        ))
        _count(metrics, "api_keys_issued_total")
        return CreateApiKeyResponse(api_key=result.token, kid=result.kid)

    @router.get("/my", response_model=List[KeyRecord])
    async def list_keys(request: Request, limit: Optional[int] = None, offset: int = 0):
        """List the caller's keys, revoked ones included."""
        user_id = await get_user_id(request)
        if offset < 0 or (limit is not None and limit < 0):
            raise InvalidInputError("limit and offset must not be negative")
        return await store.find_by_owner(user_id, limit=limit, offset=offset)

    @router.get("/{kid}", response_model=KeyRecord)
    async def get_key(request: Request, kid: str):
        return await _get_owned_record(request, kid)

    @router.delete("/{kid}")
    async def revoke_key(request: Request, kid: str):
        """Revoke one of the caller's keys. Revocation cannot be undone."""
        record = await _get_owned_record(request, kid)
        await store.revoke(record.user_id, record.kid)
        _count(metrics, "api_keys_revoked_total")
        return {}

    return router


def create_jwks_router(
    *,
    store: KeyStore,
    max_age_seconds: int = 0,
    metrics: Optional[MetricsCollector] = None,
) -> APIRouter:
    """Route publishing the key set of each live API key."""
    router = APIRouter()
    # Negative max-age is undefined for caches
    max_age = max(max_age_seconds, 0)

    @router.get("/{kid}/.well-known/jwks.json")
    async def get_jwks(kid: str):
        try:
            jwks = await load_key_set(store, _ensure_kid(kid))
        except NotFoundError:
            _count(metrics, "jwks_requests_total", status="not_found")
            raise
        _count(metrics, "jwks_requests_total", status="ok")
        return JSONResponse(content=jwks, headers={"Cache-Control": f"max-age={max_age}"})

    return router


@dataclass(frozen=True)
class ApiKeyPrincipal:
    """Identity attached to a request authenticated with an API key."""

    id: str
    claims: Dict[str, Any]
    type: str = "api_key"


class ApiKeyAuthenticator:
    """FastAPI dependency authenticating bearer API keys.

    Returns None when the request carries no bearer token or one that was not
    issued under the configured base issuer, so other authenticators can
    handle it.
    """

    def __init__(self, options: AuthenticateOptions, metrics: Optional[MetricsCollector] = None):
        self.options = options
        self.metrics = metrics

    async def __call__(self, request: Request) -> Optional[ApiKeyPrincipal]:
        authorization = request.headers.get("Authorization", "")
        if not authorization.lower().startswith("bearer "):
            return None

        token = authorization[len("bearer "):].strip()
        if not should_authenticate(token, self.options.base_issuer_url):
            return None

        try:
            claims = await authenticate(token, self.options)
        except ApiKeyError as exc:
            _count(self.metrics, "api_key_verifications_total", status=exc.error_type.value)
            raise

        _count(self.metrics, "api_key_verifications_total", status="ok")
        principal = ApiKeyPrincipal(id=claims.get("sub"), claims=claims)
        set_user_context(user_id=principal.id, key_id=claims.get("iss", "").rsplit("/", 1)[-1])
        request.state.user = principal
        logger.info("Request authenticated with API key", user_id=principal.id)
        return principal
