"""
Connection-bound repositories used inside an admission unit of work.

Each repository wraps a single asyncpg connection. Transaction boundaries
belong to the caller (see ``postgres.PostgreSQLPersistence.unit_of_work``);
nothing here commits or opens transactions.
"""

import asyncio
import uuid
from typing import Dict, Any, Optional, List, Tuple

import asyncpg
from shared.logging import get_logger
from shared.errors import StorageError, ValidationError
from ..rules.models import (
    AccessStatus, MembershipType, MembershipStatus, EnrollmentStatus,
    AccessResult, AccessSource, ReasonCode,
    Branch, Membership, Enrollment, MemberState, AttemptRecord, BranchReportFilters
)

STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class MemberStateReader:
    """Loads member snapshots (block flag, membership, enrollment)."""

    def __init__(self, conn):
        self.conn = conn
        self.logger = get_logger("admission.persistence.members")

    async def get_by_id(self, member_id: str) -> Optional[MemberState]:
        """Load a member snapshot, or None if the member does not exist."""
        try:
            row = await self.conn.fetchrow("""
                SELECT
                    m.member_id,
                    m.access_status,
                    ms.membership_id,
                    ms.membership_type,
                    ms.status AS membership_status,
                    ms.start_date,
                    ms.end_date,
                    ab.branch_id AS assigned_branch_id,
                    ab.name AS assigned_branch_name,
                    ab.code AS assigned_branch_code,
                    ab.address AS assigned_branch_address,
                    ab.active AS assigned_branch_active,
                    e.enrollment_id,
                    e.status AS enrollment_status
                FROM members m
                LEFT JOIN memberships ms ON ms.member_id = m.member_id
                LEFT JOIN branches ab ON ab.branch_id = ms.assigned_branch_id
                LEFT JOIN enrollments e ON e.member_id = m.member_id
                WHERE m.member_id = $1
            """, member_id)
        except STORAGE_ERRORS as e:
            self.logger.error("Error loading member", member_id=member_id, error=str(e))
            raise StorageError("Failed to load member", {"member_id": member_id}) from e

        if not row:
            return None

        return self._row_to_member(row)

    def _row_to_member(self, row) -> MemberState:
        """Convert a joined member row to a MemberState."""
        membership = None
        if row['membership_id'] is not None:
            assigned_branch = None
            if row['assigned_branch_id'] is not None:
                assigned_branch = Branch(
                    branch_id=row['assigned_branch_id'],
                    name=row['assigned_branch_name'],
                    code=row['assigned_branch_code'],
                    address=row['assigned_branch_address'],
                    active=row['assigned_branch_active']
                )
            membership = Membership(
                membership_type=MembershipType(row['membership_type']),
                status=MembershipStatus(row['membership_status']),
                start_date=row['start_date'],
                end_date=row['end_date'],
                assigned_branch=assigned_branch
            )

        enrollment = None
        if row['enrollment_id'] is not None:
            enrollment = Enrollment(status=EnrollmentStatus(row['enrollment_status']))

        return MemberState(
            member_id=row['member_id'],
            access_status=AccessStatus(row['access_status']),
            membership=membership,
            enrollment=enrollment
        )


class BranchDirectory:
    """Resolves branch identifiers to branch records."""

    def __init__(self, conn):
        self.conn = conn
        self.logger = get_logger("admission.persistence.branches")

    async def get_by_id(self, branch_id: str) -> Optional[Branch]:
        """Load a branch, or None if it does not exist."""
        try:
            row = await self.conn.fetchrow("""
                SELECT branch_id, name, code, address, active
                FROM branches WHERE branch_id = $1
            """, branch_id)
        except STORAGE_ERRORS as e:
            self.logger.error("Error loading branch", branch_id=branch_id, error=str(e))
            raise StorageError("Failed to load branch", {"branch_id": branch_id}) from e

        if not row:
            return None

        return self._row_to_branch(row)

    async def list_all(self, active_only: bool = False) -> List[Branch]:
        """List branches ordered by name."""
        try:
            rows = await self.conn.fetch("""
                SELECT branch_id, name, code, address, active
                FROM branches
                WHERE ($1::boolean IS FALSE OR active = TRUE)
                ORDER BY name ASC
            """, active_only)
        except STORAGE_ERRORS as e:
            self.logger.error("Error listing branches", error=str(e))
            raise StorageError("Failed to list branches") from e

        return [self._row_to_branch(row) for row in rows]

    def _row_to_branch(self, row) -> Branch:
        return Branch(
            branch_id=row['branch_id'],
            name=row['name'],
            code=row['code'],
            address=row['address'],
            active=row['active']
        )


class AuditRecorder:
    """Append-only access to the attempt log.

    Exposes ``append`` and read queries only; attempt rows are never
    updated or deleted through this class.
    """

    def __init__(self, conn):
        self.conn = conn
        self.logger = get_logger("admission.persistence.attempts")

    async def append(self, record: AttemptRecord) -> str:
        """Persist one attempt record and return its generated id."""
        if record.attempt_id is not None or record.created_at is not None:
            raise ValidationError(
                "Attempt id and creation time are assigned by the store",
                {"attempt_id": record.attempt_id}
            )

        attempt_id = str(uuid.uuid4())
        try:
            created_at = await self.conn.fetchval("""
                INSERT INTO access_attempts (
                    attempt_id, member_id, branch_id, device_id, result, source, reason
                ) VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING created_at
            """,
                attempt_id, record.member_id, record.branch_id, record.device_id,
                record.result.value, record.source.value, record.reason.value
            )
        except STORAGE_ERRORS as e:
            self.logger.error(
                "Error appending attempt",
                member_id=record.member_id,
                branch_id=record.branch_id,
                error=str(e)
            )
            raise StorageError("Failed to record access attempt", {"member_id": record.member_id}) from e

        self.logger.info(
            "Attempt recorded",
            attempt_id=attempt_id,
            member_id=record.member_id,
            branch_id=record.branch_id,
            result=record.result.value,
            reason=record.reason.value,
            created_at=created_at.isoformat() if created_at else None
        )
        return attempt_id

    async def recent_for_member(self, member_id: str, days: int) -> List[AttemptRecord]:
        """Attempts for a member in the last ``days`` days, newest first."""
        try:
            rows = await self.conn.fetch("""
                SELECT a.*, b.name AS branch_name
                FROM access_attempts a
                LEFT JOIN branches b ON b.branch_id = a.branch_id
                WHERE a.member_id = $1
                  AND a.created_at >= NOW() - ($2::int * INTERVAL '1 day')
                ORDER BY a.created_at DESC
            """, member_id, days)
        except STORAGE_ERRORS as e:
            self.logger.error("Error loading member attempts", member_id=member_id, error=str(e))
            raise StorageError("Failed to load member attempts", {"member_id": member_id}) from e

        return [self._row_to_attempt(row) for row in rows]

    async def count_distinct_days(self, member_id: str, days: int) -> int:
        """Distinct calendar days with a granted attempt in the last ``days`` days."""
        try:
            count = await self.conn.fetchval("""
                SELECT COUNT(DISTINCT DATE(created_at))::int
                FROM access_attempts
                WHERE member_id = $1
                  AND result = 'GRANTED'
                  AND created_at >= NOW() - ($2::int * INTERVAL '1 day')
            """, member_id, days)
        except STORAGE_ERRORS as e:
            self.logger.error("Error counting visit days", member_id=member_id, error=str(e))
            raise StorageError("Failed to count visit days", {"member_id": member_id}) from e

        return count or 0

    def _branch_conditions(self, filters: BranchReportFilters) -> Tuple[List[str], List[Any]]:
        """WHERE clauses and their numbered parameters for a branch query."""
        conditions = ["a.branch_id = $1"]
        params: List[Any] = [filters.branch_id]

        if filters.date_from is not None:
            params.append(filters.date_from)
            conditions.append(f"a.created_at >= ${len(params)}")

        if filters.date_to is not None:
            params.append(filters.date_to)
            conditions.append(f"a.created_at <= ${len(params)}")

        if filters.result is not None:
            params.append(filters.result.value)
            conditions.append(f"a.result = ${len(params)}")

        return conditions, params

    async def find_for_branch(self, filters: BranchReportFilters) -> Tuple[List[AttemptRecord], int]:
        """Filtered, paged attempts at a branch plus the unpaged total."""
        conditions, params = self._branch_conditions(filters)
        where = " AND ".join(conditions)
        count_params = list(params)

        params.append(filters.size)
        limit_index = len(params)
        params.append(filters.page * filters.size)
        offset_index = len(params)

        sql = f"""
            SELECT a.*, b.name AS branch_name, COUNT(*) OVER() AS total_rows
            FROM access_attempts a
            JOIN branches b ON b.branch_id = a.branch_id
            WHERE {where}
            ORDER BY a.created_at DESC
            LIMIT ${limit_index} OFFSET ${offset_index}
        """

        try:
            rows = await self.conn.fetch(sql, *params)
            if rows:
                total = int(rows[0]['total_rows'])
            elif filters.page > 0:
                # Past the last page the window count has no row to ride on.
                total = await self.conn.fetchval(
                    f"SELECT COUNT(*)::int FROM access_attempts a WHERE {where}",
                    *count_params
                )
            else:
                total = 0
        except STORAGE_ERRORS as e:
            self.logger.error("Error loading branch report", branch_id=filters.branch_id, error=str(e))
            raise StorageError("Failed to load branch report", {"branch_id": filters.branch_id}) from e

        return [self._row_to_attempt(row) for row in rows], int(total or 0)

    async def find_all_for_branch(self, filters: BranchReportFilters,
                                  limit: Optional[int] = None) -> List[AttemptRecord]:
        """Unpaged attempts at a branch, newest first; ``limit`` caps the rows."""
        conditions, params = self._branch_conditions(filters)

        limit_clause = ""
        if limit is not None and limit > 0:
            params.append(limit)
            limit_clause = f"LIMIT ${len(params)}"

        sql = f"""
            SELECT a.*, b.name AS branch_name
            FROM access_attempts a
            JOIN branches b ON b.branch_id = a.branch_id
            WHERE {' AND '.join(conditions)}
            ORDER BY a.created_at DESC
            {limit_clause}
        """

        try:
            rows = await self.conn.fetch(sql, *params)
        except STORAGE_ERRORS as e:
            self.logger.error("Error loading branch attempts", branch_id=filters.branch_id, error=str(e))
            raise StorageError("Failed to load branch attempts", {"branch_id": filters.branch_id}) from e

        return [self._row_to_attempt(row) for row in rows]

    async def stats(self) -> Dict[str, Any]:
        """Aggregate attempt statistics."""
        try:
            row = await self.conn.fetchrow("""
                SELECT
                    COUNT(*) AS total_attempts,
                    COUNT(*) FILTER (WHERE result = 'GRANTED') AS granted,
                    COUNT(*) FILTER (WHERE result = 'DENIED') AS denied,
                    COUNT(DISTINCT member_id) AS unique_members,
                    COUNT(DISTINCT branch_id) AS unique_branches
                FROM access_attempts
            """)
        except STORAGE_ERRORS as e:
            self.logger.error("Error getting attempt stats", error=str(e))
            raise StorageError("Failed to load attempt stats") from e

        return dict(row) if row else {}

    def _row_to_attempt(self, row) -> AttemptRecord:
        """Convert database row to AttemptRecord."""
        return AttemptRecord(
            attempt_id=row['attempt_id'],
            member_id=row['member_id'],
            branch_id=row['branch_id'],
            device_id=row['device_id'],
            result=AccessResult(row['result']),
            source=AccessSource(row['source']),
            reason=ReasonCode(row['reason']),
            created_at=row['created_at'],
            branch_name=row['branch_name']
        )
