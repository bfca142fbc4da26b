"""
Shared fixtures for Admission Service tests.
"""

import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from shared.errors import StorageError
from service_admission.app.rules.models import (
    AccessStatus, MembershipType, MembershipStatus, EnrollmentStatus, AccessResult,
    Branch, Membership, Enrollment, MemberState, AttemptRecord, BranchReportFilters
)


class InMemoryStore:
    """Committed state shared by the fake persistence."""

    def __init__(self):
        self.members: Dict[str, MemberState] = {}
        self.branches: Dict[str, Branch] = {}
        self.attempts: List[AttemptRecord] = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_on_read = False
        self.fail_on_append = False
        self.fail_on_commit = False


class _Members:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, member_id: str) -> Optional[MemberState]:
        if self.store.fail_on_read:
            raise StorageError("read failed")
        return self.store.members.get(member_id)


class _Branches:
    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, branch_id: str) -> Optional[Branch]:
        if self.store.fail_on_read:
            raise StorageError("read failed")
        return self.store.branches.get(branch_id)

    async def list_all(self, active_only: bool = False) -> List[Branch]:
        branches = sorted(self.store.branches.values(), key=lambda b: b.name)
        return [b for b in branches if b.active or not active_only]


class _Attempts:
    def __init__(self, store: InMemoryStore, staged: List[AttemptRecord]):
        self.store = store
        self.staged = staged

    async def append(self, record: AttemptRecord) -> str:
        if self.store.fail_on_append:
            raise StorageError("append failed")
        attempt_id = str(uuid.uuid4())
        self.staged.append(replace(record, attempt_id=attempt_id, created_at=datetime.now(timezone.utc)))
        return attempt_id

    async def recent_for_member(self, member_id: str, days: int) -> List[AttemptRecord]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        rows = [a for a in self.store.attempts if a.member_id == member_id and a.created_at >= cutoff]
        return sorted(rows, key=lambda a: a.created_at, reverse=True)

    async def count_distinct_days(self, member_id: str, days: int) -> int:
        rows = await self.recent_for_member(member_id, days)
        return len({a.created_at.date() for a in rows if a.result == AccessResult.GRANTED})

    def _for_branch(self, filters: BranchReportFilters) -> List[AttemptRecord]:
        rows = [a for a in self.store.attempts if a.branch_id == filters.branch_id]
        if filters.date_from is not None:
            rows = [a for a in rows if a.created_at >= filters.date_from]
        if filters.date_to is not None:
            rows = [a for a in rows if a.created_at <= filters.date_to]
        if filters.result is not None:
            rows = [a for a in rows if a.result == filters.result]
        return sorted(rows, key=lambda a: a.created_at, reverse=True)

    async def find_for_branch(self, filters: BranchReportFilters):
        rows = self._for_branch(filters)
        start = filters.page * filters.size
        return rows[start:start + filters.size], len(rows)

    async def find_all_for_branch(self, filters: BranchReportFilters, limit: Optional[int] = None):
        rows = self._for_branch(filters)
        return rows[:limit] if limit else rows

    async def stats(self):
        return {
            "total_attempts": len(self.store.attempts),
            "granted": len([a for a in self.store.attempts if a.result == AccessResult.GRANTED]),
            "denied": len([a for a in self.store.attempts if a.result == AccessResult.DENIED]),
        }


class InMemoryPersistence:
    """Stands in for PostgreSQLPersistence; attempts become visible only on commit."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def _uow(self, staged: List[AttemptRecord]):
        return SimpleNamespace(
            members=_Members(self.store),
            branches=_Branches(self.store),
            attempts=_Attempts(self.store, staged),
        )

    @asynccontextmanager
    async def unit_of_work(self):
        staged: List[AttemptRecord] = []
        try:
            yield self._uow(staged)
        except Exception:
            self.store.rollbacks += 1
            raise
        if self.store.fail_on_commit:
            self.store.rollbacks += 1
            raise StorageError("commit failed")
        self.store.attempts.extend(staged)
        self.store.commits += 1

    @asynccontextmanager
    async def session(self):
        yield self._uow([])

    async def health_check(self) -> bool:
        return True


@pytest.fixture
def branch_b1():
    """Providencia branch."""
    return Branch(branch_id="11111111-1111-1111-1111-111111111111", name="Providencia", code="PROVIDENCIA")


@pytest.fixture
def branch_b2():
    """Nunoa branch."""
    return Branch(branch_id="22222222-2222-2222-2222-222222222222", name="Nunoa", code="NUNOA")


@pytest.fixture
def inactive_branch():
    """A branch that exists but is closed."""
    return Branch(branch_id="33333333-3333-3333-3333-333333333333", name="Maipu", code="MAIPU", active=False)


@pytest.fixture
def make_member(branch_b1):
    """Build member snapshots; defaults describe an admissible multi-site member."""

    def _make(member_id: str = "member-1",
              access_status: AccessStatus = AccessStatus.ACTIVE,
              membership_type: Optional[MembershipType] = MembershipType.MULTI_SITE_ANNUAL,
              membership_status: MembershipStatus = MembershipStatus.ACTIVE,
              assigned_branch: Optional[Branch] = None,
              enrollment_status: Optional[EnrollmentStatus] = EnrollmentStatus.ENROLLED) -> MemberState:
        membership = None
        if membership_type is not None:
            membership = Membership(
                membership_type=membership_type,
                status=membership_status,
                start_date=date(2026, 1, 1),
                end_date=date(2026, 12, 31),
                assigned_branch=assigned_branch
            )
        enrollment = Enrollment(status=enrollment_status) if enrollment_status is not None else None
        return MemberState(
            member_id=member_id,
            access_status=access_status,
            membership=membership,
            enrollment=enrollment
        )

    return _make


@pytest.fixture
def store(branch_b1, branch_b2, inactive_branch):
    """In-memory store seeded with three branches."""
    s = InMemoryStore()
    for branch in (branch_b1, branch_b2, inactive_branch):
        s.branches[branch.branch_id] = branch
    return s


@pytest.fixture
def persistence(store):
    """In-memory persistence over the seeded store."""
    return InMemoryPersistence(store)
