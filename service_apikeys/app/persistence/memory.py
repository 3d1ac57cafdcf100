"""
In-memory key store for development and tests.
"""

from typing import Dict, List, Optional

from shared.errors import DatabaseError, IncorrectUsageError
from shared.logging import get_logger
from .base import KeyRecord, KeyStore


class InMemoryKeyStore(KeyStore):
    """Process-local key store. Records are kept in insertion order."""

    def __init__(self):
        self.logger = get_logger("apikeys.persistence.memory")
        self._records: Dict[str, KeyRecord] = {}

    async def ensure_table(self) -> None:
        return None

    async def insert(self, record: KeyRecord) -> None:
        if record.kid in self._records:
            raise DatabaseError("Failed to insert api key", details={"kid": record.kid})
        self._records[record.kid] = record.model_copy(deep=True)
        self.logger.debug("API key stored", kid=record.kid, user_id=record.user_id)

    async def get_by_key_id(self, kid: str) -> Optional[KeyRecord]:
        record = self._records.get(kid)
        return record.model_copy(deep=True) if record else None

    async def find_by_owner(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[KeyRecord]:
        if offset < 0 or (limit is not None and limit < 0):
            raise IncorrectUsageError("limit and offset must not be negative")
        owned = [record for record in self._records.values() if record.user_id == user_id]
        end = None if limit is None else offset + limit
        return [record.model_copy(deep=True) for record in owned[offset:end]]

    async def revoke(self, user_id: str, kid: str) -> None:
        record = self._records.get(kid)
        if record is None or record.user_id != user_id:
            return
        record.revoked = True
        self.logger.info("API key revoked", kid=kid, user_id=user_id)
