"""
PostgreSQL persistence layer for the Admission Service.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg
from shared.logging import get_logger
from shared.errors import StorageError
from .repositories import STORAGE_ERRORS, MemberStateReader, BranchDirectory, AuditRecorder


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS branches (
        branch_id VARCHAR(36) PRIMARY KEY,
        name VARCHAR(160) NOT NULL,
        code VARCHAR(48) NOT NULL UNIQUE,
        address VARCHAR(240),
        active BOOLEAN NOT NULL DEFAULT TRUE
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS members (
        member_id VARCHAR(36) PRIMARY KEY,
        access_status VARCHAR(16) NOT NULL DEFAULT 'NOT_ENROLLED',
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS memberships (
        membership_id VARCHAR(36) PRIMARY KEY,
        member_id VARCHAR(36) NOT NULL UNIQUE REFERENCES members(member_id),
        membership_type VARCHAR(32) NOT NULL,
        status VARCHAR(16) NOT NULL,
        start_date DATE NOT NULL,
        end_date DATE NOT NULL,
        assigned_branch_id VARCHAR(36) REFERENCES branches(branch_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS enrollments (
        enrollment_id VARCHAR(36) PRIMARY KEY,
        member_id VARCHAR(36) NOT NULL UNIQUE REFERENCES members(member_id),
        status VARCHAR(16) NOT NULL DEFAULT 'NOT_ENROLLED'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS access_attempts (
        attempt_id VARCHAR(36) PRIMARY KEY,
        member_id VARCHAR(36) NOT NULL REFERENCES members(member_id),
        branch_id VARCHAR(36) NOT NULL REFERENCES branches(branch_id),
        device_id VARCHAR(80),
        result VARCHAR(16) NOT NULL,
        source VARCHAR(16) NOT NULL,
        reason VARCHAR(120) NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_access_attempts_member ON access_attempts(member_id);",
    "CREATE INDEX IF NOT EXISTS idx_access_attempts_branch ON access_attempts(branch_id);",
    "CREATE INDEX IF NOT EXISTS idx_access_attempts_created ON access_attempts(created_at DESC);",
)


class AdmissionUnitOfWork:
    """Repositories bound to one connection (and, usually, one transaction)."""

    def __init__(self, conn):
        self.conn = conn
        self.members = MemberStateReader(conn)
        self.branches = BranchDirectory(conn)
        self.attempts = AuditRecorder(conn)


class PostgreSQLPersistence:
    """PostgreSQL persistence layer for admission checks and attempt history."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10, command_timeout: float = 5.0):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("admission.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except STORAGE_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StorageError("Failed to start PostgreSQL persistence", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create database tables and indexes."""
        async with self.pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise StorageError("PostgreSQL persistence is not started")
        return self.pool

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[AdmissionUnitOfWork]:
        """Open a transaction and yield repositories bound to it.

        Commits when the block exits normally and rolls back on any
        exception. Driver errors, including a failed COMMIT, surface as
        StorageError; other exceptions propagate unchanged.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    yield AdmissionUnitOfWork(conn)
        except STORAGE_ERRORS as e:
            self.logger.error("Unit of work rolled back", error=str(e))
            raise StorageError("Storage operation failed", {"error": str(e)}) from e

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AdmissionUnitOfWork]:
        """Yield repositories on a pooled connection without a transaction.

        Used for read-only history and report queries.
        """
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                yield AdmissionUnitOfWork(conn)
        except STORAGE_ERRORS as e:
            self.logger.error("Session failed", error=str(e))
            raise StorageError("Storage operation failed", {"error": str(e)}) from e

    async def health_check(self) -> bool:
        """Check database health."""
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except STORAGE_ERRORS:
            return False
