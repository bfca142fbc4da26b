"""
Read-only attempt history and branch reporting.
"""

import csv
import io
import re
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from shared.logging import get_logger
from shared.errors import NotFoundError, ValidationError

from .rules.models import AccessResult, AttemptRecord, Branch, BranchReportFilters
from .persistence.postgres import PostgreSQLPersistence


DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CSV_HEADER = ["date", "time", "member_id", "branch", "result", "reason", "source", "device_id"]

_datetime_adapter = TypeAdapter(datetime)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; aware ones are returned unchanged."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_report_bound(value: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """Parse a ``from``/``to`` report parameter.

    A bare ``YYYY-MM-DD`` covers the whole UTC day: it starts at 00:00 or,
    with ``end_of_day``, ends at 23:59:59.999999. Full timestamps are taken
    as given, naive ones as UTC.
    """
    if not value:
        return None

    try:
        if DATE_ONLY.match(value):
            day = date.fromisoformat(value)
            return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
        return as_utc(_datetime_adapter.validate_python(value))
    except (ValueError, PydanticValidationError) as e:
        raise ValidationError(f"Invalid date or timestamp: '{value}'", {"value": value}) from e


class AttemptHistory:
    """Queries over the attempt log for members, branches and dashboards."""

    def __init__(self, persistence: PostgreSQLPersistence, default_days: int = 7, max_page_size: int = 100):
        self.persistence = persistence
        self.default_days = default_days
        self.max_page_size = max_page_size
        self.logger = get_logger("admission.history")

    async def member_history(self, member_id: str, days: Optional[int] = None) -> Tuple[List[AttemptRecord], int, int]:
        """Recent attempts and visit-day count for a member.

        Returns ``(attempts, visit_days, days)``.
        """
        days = self.default_days if days is None else days
        if days < 1:
            raise ValidationError("days must be at least 1", {"days": days})

        async with self.persistence.session() as uow:
            if await uow.members.get_by_id(member_id) is None:
                raise NotFoundError("Member", member_id)
            attempts = await uow.attempts.recent_for_member(member_id, days)
            visit_days = await uow.attempts.count_distinct_days(member_id, days)

        return attempts, visit_days, days

    def _report_filters(self, branch_id: str, date_from: Optional[datetime], date_to: Optional[datetime],
                        result: Optional[AccessResult], page: int = 0, size: int = 20) -> BranchReportFilters:
        date_from, date_to = as_utc(date_from), as_utc(date_to)
        if date_from and date_to and date_from > date_to:
            raise ValidationError(
                "'from' must not be after 'to'",
                {"from": date_from.isoformat(), "to": date_to.isoformat()}
            )

        return BranchReportFilters(
            branch_id=branch_id,
            date_from=date_from,
            date_to=date_to,
            result=result,
            page=page,
            size=size
        )

    def _check_size(self, name: str, value: int):
        if value < 1 or value > self.max_page_size:
            raise ValidationError(
                f"{name} must be between 1 and {self.max_page_size}",
                {name: value}
            )

    async def branch_report(self, branch_id: str, date_from: Optional[datetime] = None,
                            date_to: Optional[datetime] = None, result: Optional[AccessResult] = None,
                            page: int = 0, size: int = 20) -> Tuple[List[AttemptRecord], int]:
        """Paged attempts at a branch with optional date and result filters."""
        if page < 0:
            raise ValidationError("page must not be negative", {"page": page})
        self._check_size("size", size)
        filters = self._report_filters(branch_id, date_from, date_to, result, page, size)

        async with self.persistence.session() as uow:
            if await uow.branches.get_by_id(branch_id) is None:
                raise NotFoundError("Branch", branch_id)
            return await uow.attempts.find_for_branch(filters)

    async def recent_for_branch(self, branch_id: str, limit: int = 20) -> List[AttemptRecord]:
        """The latest ``limit`` attempts at a branch, for a live checkpoint feed."""
        self._check_size("limit", limit)

        async with self.persistence.session() as uow:
            if await uow.branches.get_by_id(branch_id) is None:
                raise NotFoundError("Branch", branch_id)
            return await uow.attempts.find_all_for_branch(BranchReportFilters(branch_id=branch_id), limit)

    async def export_csv(self, branch_id: str, date_from: Optional[datetime] = None,
                         date_to: Optional[datetime] = None, result: Optional[AccessResult] = None) -> str:
        """Every matching attempt at a branch as ``;``-separated CSV."""
        filters = self._report_filters(branch_id, date_from, date_to, result)

        async with self.persistence.session() as uow:
            if await uow.branches.get_by_id(branch_id) is None:
                raise NotFoundError("Branch", branch_id)
            attempts = await uow.attempts.find_all_for_branch(filters)

        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for attempt in attempts:
            created_at = attempt.created_at.astimezone(timezone.utc)
            writer.writerow([
                created_at.date().isoformat(),
                created_at.strftime("%H:%M:%S"),
                attempt.member_id,
                attempt.branch_name or attempt.branch_id,
                attempt.result.value,
                attempt.reason.value,
                attempt.source.value,
                attempt.device_id or "",
            ])

        self.logger.info("Branch attempts exported", branch_id=branch_id, rows=len(attempts))
        return buffer.getvalue()

    async def list_branches(self, active_only: bool = False) -> List[Branch]:
        async with self.persistence.session() as uow:
            return await uow.branches.list_all(active_only)

    async def stats(self) -> Dict[str, Any]:
        async with self.persistence.session() as uow:
            return await uow.attempts.stats()
