"""
Key record storage contract.

A record is written once when a key is issued. The only mutation afterwards
is revocation, which is owner-scoped and irreversible.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from shared.errors import IncorrectUsageError

TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


class KeyRecord(BaseModel):
    """Persisted view of an issued API key."""

    kid: str
    user_id: str
    revoked: bool = False
    jwk: Dict[str, Any]
    metadata: Dict[str, Any] = Field(default_factory=dict)


def validate_table_name(table_name: str) -> str:
    if not TABLE_NAME_PATTERN.match(table_name):
        raise IncorrectUsageError("Invalid table name", details={"table": table_name})
    return table_name


class KeyStore(ABC):
    """Persistence engine for key records."""

    @abstractmethod
    async def ensure_table(self) -> None:
        """Create the backing table (or equivalent) if needed."""

    @abstractmethod
    async def insert(self, record: KeyRecord) -> None:
        ...

    @abstractmethod
    async def get_by_key_id(self, kid: str) -> Optional[KeyRecord]:
        ...

    @abstractmethod
    async def find_by_owner(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[KeyRecord]:
        ...

    @abstractmethod
    async def revoke(self, user_id: str, kid: str) -> None:
        """Mark ``kid`` revoked if it belongs to ``user_id``; no-op otherwise."""

    async def close(self) -> None:
        """Release resources held by the store."""
