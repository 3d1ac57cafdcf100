"""
Reference resolvers for API key verification.

- RemoteJWKSResolver: fetches ``<iss>/.well-known/jwks.json`` over HTTP and
  caches each document for a short TTL. ``remote_resolver_from_config`` builds
  one from the service settings.
- StoreResolver: answers from a KeyStore in the same process.
- local_key_set: serves one fixed key set.

Every resolver re-checks that the issuer lies under its base issuer before
doing any I/O, even though the verifier already did.
"""

import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

import httpx

from shared.config import BaseConfig
from shared.errors import NotFoundError, UnauthorizedError
from shared.logging import get_logger
from shared.urls import compose_url
from ..persistence.base import KeyStore
from ..protocol import JWKS_PATH
from ..validation.token_verifier import validate_issuer
from .base import KeyIdentifier, KeySetAccessor, Resolver


async def load_key_set(store: KeyStore, kid: str) -> Dict[str, Any]:
    """Return the published JWKS for ``kid``; NotFoundError if unknown or revoked."""
    record = await store.get_by_key_id(kid)
    if record is None or record.revoked:
        raise NotFoundError("API key not found")
    return {"keys": [record.jwk]}


class RemoteJWKSResolver:
    """Resolver that fetches per-key JWKS documents from the issuer."""

    def __init__(
        self,
        base_issuer_url: str,
        client: Optional[httpx.AsyncClient] = None,
        cache_ttl: int = 300,
        timeout: float = 5.0,
        max_cache_entries: int = 1024,
    ):
        self.base_issuer_url = base_issuer_url
        self.cache_ttl = cache_ttl
        self.max_cache_entries = max_cache_entries
        self.logger = get_logger("apikeys.jwks")

        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._cache: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()

    def __call__(self, identifier: KeyIdentifier) -> KeySetAccessor:
        validate_issuer(identifier.iss, self.base_issuer_url)
        url = compose_url(identifier.iss, JWKS_PATH)

        async def accessor(header: Dict[str, Any]) -> Dict[str, Any]:
            return await self.get_jwks(url)

        return accessor

    async def get_jwks(self, url: str) -> Dict[str, Any]:
        """Get a JWKS document from cache or fetch it."""
        now = time.time()
        cached = self._cache.get(url)
        if cached is not None and now - cached[0] < self.cache_ttl:
            return cached[1]

        try:
            response = await self._client.get(url)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            self.logger.warning("Failed to fetch JWKS", url=url, error=str(exc))
            raise UnauthorizedError("Failed to fetch key set") from exc
        except ValueError as exc:
            self.logger.warning("JWKS response is not JSON", url=url)
            raise UnauthorizedError("Failed to fetch key set") from exc

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            raise UnauthorizedError("JWKS response missing 'keys' array")

        self._store(url, now, payload)
        self.logger.debug("JWKS fetched", url=url, keys_count=len(keys))
        return payload

    def _store(self, url: str, fetched_at: float, payload: Dict[str, Any]) -> None:
        self._cache[url] = (fetched_at, payload)
        self._cache.move_to_end(url)
        while len(self._cache) > self.max_cache_entries:
            self._cache.popitem(last=False)

    def clear_cache(self):
        """Clear all cached key sets."""
        self._cache.clear()
        self.logger.info("JWKS cache cleared")

    async def close(self) -> None:
        """Close the underlying HTTP client if this resolver created it."""
        if self._owns_client:
            await self._client.aclose()


def remote_resolver_from_config(
    config: BaseConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> RemoteJWKSResolver:
    """RemoteJWKSResolver for ``config.base_issuer_url`` using the configured TTL and timeout."""
    return RemoteJWKSResolver(
        config.base_issuer_url,
        client=client,
        cache_ttl=config.jwks_cache_ttl,
        timeout=config.http_timeout,
    )


class StoreResolver:
    """Resolver backed directly by a KeyStore."""

    def __init__(self, store: KeyStore, base_issuer_url: str):
        self.store = store
        self.base_issuer_url = base_issuer_url

    def __call__(self, identifier: KeyIdentifier) -> KeySetAccessor:
        validate_issuer(identifier.iss, self.base_issuer_url)

        async def accessor(header: Dict[str, Any]) -> Dict[str, Any]:
            return await load_key_set(self.store, identifier.kid)

        return accessor


def local_key_set(jwks: Dict[str, Any]) -> Resolver:
    """Resolver serving ``jwks`` for every identifier."""

    def resolve(identifier: KeyIdentifier) -> KeySetAccessor:
        async def accessor(header: Dict[str, Any]) -> Dict[str, Any]:
            return jwks

        return accessor

    return resolve
