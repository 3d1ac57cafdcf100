"""
API Key Service package for the 254Carbon Access Layer.

Issues self-describing, signed API keys and authenticates their bearers
without ever persisting a secret:

- app.signing: Key issuance (ephemeral RSA key pair per API key).
- app.validation: Structural and cryptographic token verification.
- app.jwks: Resolvers that locate the one public key a token needs.
- app.persistence: Key record storage contract and engines.
- app.routes: FastAPI routers for key management, JWKS publication and
  bearer authentication.
- app.main: Application entrypoint.

Design notes:
- Module import must not perform network or database calls.
- Signing and verification are stateless; revocation lives in the store.
"""
