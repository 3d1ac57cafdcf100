"""
JWKS resolver package.

Contains the resolver contract used by the token verifier and reference
resolvers that locate the public key of a single API key.

Key points:
- The issuer URL of a token is ``<base issuer>/<kid>``; its key set lives at
  ``<issuer>/.well-known/jwks.json``.
- A missing or revoked key is reported by failing, never by an empty set.
- Caching belongs to the resolver; the verifier holds no state.
"""
