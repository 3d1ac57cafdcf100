"""
PostgreSQL key store for the API Key Service.
"""

import json
from typing import Any, List, Mapping, Optional

import asyncpg

from shared.errors import DatabaseError, IncorrectUsageError, InvalidInputError
from shared.logging import get_logger
from .base import KeyRecord, KeyStore, validate_table_name


class PostgresKeyStore(KeyStore):
    """asyncpg-backed key store.

    ``jwk`` and ``metadata`` are stored as JSON text so no codec registration
    is needed on the pool.
    """

    def __init__(self, dsn: str, table_name: str = "api_keys", pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.table_name = validate_table_name(table_name)
        self.logger = get_logger("apikeys.persistence.postgres")
        self.pool = pool
        self._ready = False

    async def start(self):
        """Create the connection pool and the table."""
        if self.pool is None:
            try:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=2,
                    max_size=10,
                    command_timeout=30
                )
            except Exception as e:
                self.logger.error("Failed to start PostgreSQL key store", error=str(e))
                raise DatabaseError("Failed to connect to the database") from e

        await self.ensure_table()
        self.logger.info("PostgreSQL key store started", table=self.table_name)

    async def close(self) -> None:
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL key store stopped")

    async def ensure_table(self) -> None:
        if self.pool is None:
            raise IncorrectUsageError("Database not initialized. Call start() first.")
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.table_name} (
                        kid TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        revoked BOOLEAN NOT NULL DEFAULT FALSE,
                        jwk TEXT NOT NULL,
                        metadata TEXT NOT NULL
                    );
                """)
                await conn.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{self.table_name}_user ON {self.table_name}(user_id);
                """)
        except Exception as e:
            raise DatabaseError("Failed to create the table") from e
        self._ready = True

    def _require_ready(self) -> asyncpg.Pool:
        if not self._ready:
            raise IncorrectUsageError("Database not initialized. Call ensure_table() first.")
        return self.pool

    async def insert(self, record: KeyRecord) -> None:
        pool = self._require_ready()
        try:
            jwk = json.dumps(record.jwk)
            metadata = json.dumps(record.metadata)
        except (TypeError, ValueError) as e:
            raise InvalidInputError("Failed to serialize the metadata") from e

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO {self.table_name} (kid, user_id, revoked, jwk, metadata)
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    record.kid, record.user_id, record.revoked, jwk, metadata
                )
        except Exception as e:
            self.logger.error("Error inserting api key", kid=record.kid, error=str(e))
            raise DatabaseError("Failed to insert api key") from e

        self.logger.info("API key stored", kid=record.kid, user_id=record.user_id)

    async def get_by_key_id(self, kid: str) -> Optional[KeyRecord]:
        pool = self._require_ready()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT * FROM {self.table_name} WHERE kid = $1",
                    kid
                )
        except Exception as e:
            self.logger.error("Error loading api key", kid=kid, error=str(e))
            raise DatabaseError("Failed to query for the api key") from e

        if not row:
            return None
        return self._row_to_record(row)

    async def find_by_owner(
        self, user_id: str, limit: Optional[int] = None, offset: int = 0
    ) -> List[KeyRecord]:
        pool = self._require_ready()
        if offset < 0 or (limit is not None and limit < 0):
            raise IncorrectUsageError("limit and offset must not be negative")
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT * FROM {self.table_name}
                    WHERE user_id = $1
                    ORDER BY kid ASC
                    LIMIT $2 OFFSET $3
                    """,
                    user_id, limit, offset
                )
        except Exception as e:
            self.logger.error("Error loading api keys", user_id=user_id, error=str(e))
            raise DatabaseError("Failed to query for the api keys") from e

        return [self._row_to_record(row) for row in rows]

    async def revoke(self, user_id: str, kid: str) -> None:
        pool = self._require_ready()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    f"UPDATE {self.table_name} SET revoked = TRUE WHERE user_id = $1 AND kid = $2",
                    user_id, kid
                )
        except Exception as e:
            self.logger.error("Error revoking api key", kid=kid, error=str(e))
            raise DatabaseError("Failed to revoke the api key") from e

        self.logger.info("API key revoked", kid=kid, user_id=user_id)

    def _row_to_record(self, row: Mapping[str, Any]) -> KeyRecord:
        """Convert database row to KeyRecord."""
        try:
            return KeyRecord(
                kid=row["kid"],
                user_id=row["user_id"],
                revoked=bool(row["revoked"]),
                jwk=json.loads(row["jwk"]),
                metadata=json.loads(row["metadata"]),
            )
        except Exception as e:
            raise DatabaseError("Failed to deserialize an api key row") from e
