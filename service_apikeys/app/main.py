"""
API Key service for the 254Carbon Access Layer.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import ApiKeyError, MalformedTokenError, UnauthorizedError
from .jwks.base import Resolver
from .jwks.resolver import RemoteJWKSResolver, StoreResolver, remote_resolver_from_config
from .persistence import InMemoryKeyStore, KeyStore, PostgresKeyStore
from .routes import (
    ApiKeyAuthenticator,
    ApiKeyPrincipal,
    GetUserId,
    create_api_key_router,
    create_jwks_router,
)
from .validation.token_verifier import AuthenticateOptions, VerifyOptions, authenticate

SERVICE_NAME = "apikeys"
SERVICE_PORT = 8020


class VerifyApiKeyRequest(BaseModel):
    """Request model for API key verification."""
    token: str


class ApiKeyService(BaseService):
    """API key service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[KeyStore] = None,
        get_user_id: Optional[GetUserId] = None,
        resolver: Optional[Resolver] = None,
    ):
        config = config or get_config(SERVICE_NAME, SERVICE_PORT)
        self.store = store or self._create_store(config)
        self.get_user_id = get_user_id or self._user_id_from_header
        self.authenticate_options = AuthenticateOptions(
            base_issuer_url=config.base_issuer_url,
            resolver=resolver or self._create_resolver(config, self.store),
            verify_options=VerifyOptions(audience=config.audience),
        )
        super().__init__(SERVICE_NAME, SERVICE_PORT, config)
        self.authenticator = ApiKeyAuthenticator(self.authenticate_options, metrics=self.metrics)
        self._setup_apikey_routes()

    @staticmethod
    def _create_resolver(config: ServiceConfig, store: KeyStore) -> Resolver:
        if config.jwks_resolver == "remote":
            return remote_resolver_from_config(config)
        return StoreResolver(store, config.base_issuer_url)

    @staticmethod
    def _create_store(config: ServiceConfig) -> KeyStore:
        if config.store_backend == "postgres":
            return PostgresKeyStore(config.postgres_dsn, config.api_keys_table)
        return InMemoryKeyStore()

    async def _user_id_from_header(self, request: Request) -> str:
        """Caller identity as forwarded by the gateway after session auth."""
        user_id = request.headers.get(self.config.user_id_header, "").strip()
        if not user_id:
            raise UnauthorizedError("Missing user identity")
        return user_id

    async def startup(self) -> None:
        if isinstance(self.store, PostgresKeyStore):
            await self.store.start()
        else:
            await self.store.ensure_table()
        self.logger.info("API key store ready", backend=type(self.store).__name__)

    async def shutdown(self) -> None:
        resolver = self.authenticate_options.resolver
        if isinstance(resolver, RemoteJWKSResolver):
            await resolver.close()
        await self.store.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "store": type(self.store).__name__,
            "resolver": type(self.authenticate_options.resolver).__name__,
        }

    def _setup_apikey_routes(self):
        """Set up API key specific routes."""

        self.app.include_router(
            create_api_key_router(
                get_user_id=self.get_user_id,
                store=self.store,
                base_issuer_url=self.config.base_issuer_url,
                audience=self.config.audience,
                metrics=self.metrics,
            ),
            prefix=self.config.api_keys_route_prefix,
            tags=["api-keys"],
        )
        self.app.include_router(
            create_jwks_router(
                store=self.store,
                max_age_seconds=self.config.jwks_max_age_seconds,
                metrics=self.metrics,
            ),
            prefix=self.config.jwks_route_prefix,
            tags=["jwks"],
        )

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": SERVICE_NAME,
                "message": "254Carbon Access Layer - API Key Service",
                "version": "1.0.0"
            }

        @self.app.post("/auth/verify")
        async def verify_api_key(request: VerifyApiKeyRequest):
            """Verify an API key and return its claims."""
            try:
                claims = await authenticate(request.token, self.authenticate_options)
            except ApiKeyError as exc:
                self.metrics.increment_counter("api_key_verifications_total", status=exc.error_type.value)
                raise
            self.metrics.increment_counter("api_key_verifications_total", status="ok")
            return {"valid": True, "claims": claims}

        @self.app.get("/auth/me")
        async def whoami(principal: Optional[ApiKeyPrincipal] = Depends(self.authenticator)) -> Dict[str, Any]:
            """Identity of the API key presented in the Authorization header."""
            if principal is None:
                raise MalformedTokenError("Missing API key")
            return {"type": principal.type, "id": principal.id, "claims": principal.claims}


def create_app(
    config: Optional[ServiceConfig] = None,
    store: Optional[KeyStore] = None,
    get_user_id: Optional[GetUserId] = None,
) -> FastAPI:
    """Create FastAPI application."""
    service = ApiKeyService(config=config, store=store, get_user_id=get_user_id)
    return service.app


if __name__ == "__main__":
    service = ApiKeyService()
    service.run()
