"""
Workflow Domain Database Connection Pool

Manages the asyncpg connection pool for the service request database.
Automatically applies schema.sql on initialization.

Schema Evolution:
-----------------
When adding/removing/renaming tables in schema.sql:
1. Update the schema.sql file with new DDL
2. Update DomainDBPool.EXPECTED_TABLES constant with new table names
3. For existing deployments, manually migrate or drop/recreate the schema:
   DROP SCHEMA svcreq CASCADE;
   (then restart app to auto-create)
"""

from pathlib import Path
from typing import Optional

import asyncpg
from loguru import logger

SCHEMA_NAME = "svcreq"


class DomainDBPool:
    """Workflow domain database connection pool manager."""

    EXPECTED_TABLES = {
        "departments",
        "users",
        "vehicles",
        "drivers",
        "requests",
        "approvals",
        "audit_trail",
    }

    def __init__(self, connection_string: str, min_size: int = 2, max_size: int = 10):
        """
        Initialize domain DB pool.

        Args:
            connection_string: PostgreSQL connection string for the workflow domain database
            min_size: Minimum pooled connections
            max_size: Maximum pooled connections
        """
        self.connection_string = connection_string
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None
        self._pool_initialized = False

    async def initialize(self) -> None:
        """Create the pool, validate it and apply the schema."""
        if self._pool_initialized and self.pool is not None:
            logger.debug("Domain DB pool already initialized")
            return

        try:
            logger.info("Initializing workflow domain database pool")

            self.pool = await asyncpg.create_pool(
                self.connection_string,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=60,
                timeout=15,
            )

            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                if result != 1:
                    raise RuntimeError("Pool validation query failed")

            logger.info("Domain DB pool validated")

            await self._run_migrations()

            self._pool_initialized = True
            logger.success("Workflow domain database initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize domain DB pool: {e}", exc_info=True)
            if self.pool:
                await self.pool.close()
                self.pool = None
            raise

    async def _existing_tables(self, conn: asyncpg.Connection) -> set:
        rows = await conn.fetch(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = $1
            ORDER BY table_name
            """,
            SCHEMA_NAME,
        )
        return {row["table_name"] for row in rows}

    async def _run_migrations(self) -> None:
        """
        Execute schema.sql unless every expected table already exists.

        Raises:
            RuntimeError: Schema contains tables this version does not know about,
                or tables are still missing after the migration ran
        """
        async with self.pool.acquire() as conn:
            existing_tables = await self._existing_tables(conn)

            if existing_tables == self.EXPECTED_TABLES:
                logger.info(f"Schema {SCHEMA_NAME} and all {len(existing_tables)} expected tables exist")
                return

            extra_tables = existing_tables - self.EXPECTED_TABLES
            if extra_tables:
                logger.error(
                    f"Schema {SCHEMA_NAME} contains {len(extra_tables)} unexpected table(s): {extra_tables}. "
                    f"Please update DomainDBPool.EXPECTED_TABLES or manually clean up the schema."
                )
                raise RuntimeError(f"Unexpected tables in schema: {extra_tables}. Schema evolution required.")

            schema_path = Path(__file__).parent / "schema.sql"
            if not schema_path.exists():
                raise FileNotFoundError(f"schema.sql not found at {schema_path}")

            logger.info(f"Applying {schema_path.name}", missing_tables=sorted(self.EXPECTED_TABLES - existing_tables))
            await conn.execute(schema_path.read_text(encoding="utf-8"))

            existing_tables = await self._existing_tables(conn)
            missing_tables = self.EXPECTED_TABLES - existing_tables
            if missing_tables:
                raise RuntimeError(f"Migration incomplete: missing tables {missing_tables}")

            logger.success(f"All {len(self.EXPECTED_TABLES)} workflow tables verified successfully")

    async def close(self) -> None:
        """Close the connection pool gracefully."""
        if self.pool:
            logger.info("Closing workflow domain database pool")
            await self.pool.close()
            self.pool = None
            self._pool_initialized = False
            logger.info("Domain DB pool closed")

    async def health_check(self) -> bool:
        """
        Check if database connection is healthy.

        Returns:
            True if connection is healthy, False otherwise
        """
        try:
            if not self.pool:
                return False

            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error(f"Domain DB health check failed: {e}")
            return False
