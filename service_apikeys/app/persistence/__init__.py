"""
Key record persistence.

The signing and verification code never touches storage directly; the
service writes a KeyRecord after issuance and resolvers read it back to
publish (or refuse to publish) the public key.
"""

from .base import KeyRecord, KeyStore
from .memory import InMemoryKeyStore
from .postgres import PostgresKeyStore

__all__ = ["KeyRecord", "KeyStore", "InMemoryKeyStore", "PostgresKeyStore"]
