"""
Integration test for the complete API key lifecycle.

A relying service verifies keys against the issuing service's JWKS endpoint
over HTTP, exactly as it would across the network.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from service_apikeys.app.jwks.resolver import RemoteJWKSResolver
from service_apikeys.app.main import SERVICE_NAME, SERVICE_PORT, create_app
from service_apikeys.app.persistence import InMemoryKeyStore
from service_apikeys.app.validation.token_verifier import (
    AuthenticateOptions,
    VerifyOptions,
    authenticate,
    should_authenticate,
)
from shared.config import get_config
from shared.errors import MalformedTokenError, UnauthorizedError

BASE_URL = "http://apikeys.test"
BASE_ISSUER = f"{BASE_URL}/jwks"


class TestApiKeyFlow:
    """Issue, verify remotely, revoke, verify again."""

    @pytest_asyncio.fixture
    async def client(self):
        config = get_config(SERVICE_NAME, SERVICE_PORT, base_issuer_url=BASE_ISSUER)
        app = create_app(config=config, store=InMemoryKeyStore())
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
            yield client

    @pytest.fixture
    def resolver(self, client):
        return RemoteJWKSResolver(BASE_ISSUER, client=client, cache_ttl=300)

    @pytest.fixture
    def options(self, resolver):
        return AuthenticateOptions(
            base_issuer_url=BASE_ISSUER,
            resolver=resolver,
            verify_options=VerifyOptions(audience="api-key"),
        )

    async def _issue(self, client, user_id="u1"):
        response = await client.post(
            "/api-keys",
            json={
                "expires_at": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
                "claims": {"scopes": ["read"]},
            },
            headers={"X-User-ID": user_id},
        )
        assert response.status_code == 200, response.text
        return response.json()

    @pytest.mark.asyncio
    async def test_issue_verify_revoke(self, client, resolver, options):
        created = await self._issue(client)
        token = created["api_key"]

        assert should_authenticate(token, BASE_ISSUER)
        claims = await authenticate(token, options)
        assert claims["sub"] == "u1"
        assert claims["scopes"] == ["read"]

        response = await client.delete(f"/api-keys/{created['kid']}", headers={"X-User-ID": "u1"})
        assert response.status_code == 200

        # Cached key set stays valid until it expires or is cleared
        assert (await authenticate(token, options))["sub"] == "u1"

        resolver.clear_cache()
        with pytest.raises(UnauthorizedError):
            await authenticate(token, options)

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, client, options):
        first = await self._issue(client)
        second = await self._issue(client, user_id="u2")

        await client.delete(f"/api-keys/{first['kid']}", headers={"X-User-ID": "u1"})

        with pytest.raises(UnauthorizedError):
            await authenticate(first["api_key"], options)
        assert (await authenticate(second["api_key"], options))["sub"] == "u2"

    @pytest.mark.asyncio
    async def test_key_from_another_issuer_is_rejected(self, client):
        created = await self._issue(client)
        other_options = AuthenticateOptions(
            base_issuer_url="http://other.test/jwks",
            resolver=RemoteJWKSResolver("http://other.test/jwks", client=client),
        )

        assert not should_authenticate(created["api_key"], "http://other.test/jwks")
        with pytest.raises(MalformedTokenError):
            await authenticate(created["api_key"], other_options)

    @pytest.mark.asyncio
    async def test_bearer_authentication_through_the_service(self, client):
        created = await self._issue(client)

        response = await client.get("/auth/me", headers={"Authorization": f"Bearer {created['api_key']}"})

        assert response.status_code == 200
        assert response.json()["id"] == "u1"
