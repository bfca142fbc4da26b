"""
Admission service for gym checkpoints.
"""

import math
from typing import Optional, List
from datetime import datetime

from fastapi import Query, Response
from shared.base_service import BaseService
from shared.errors import AccessLayerException, ServiceError

from .coordinator import AdmissionCoordinator
from .history import AttemptHistory, parse_report_bound
from .rules.models import (
    AccessResult, AdmissionCheckRequest, AdmissionCheckResponse,
    AttemptResponse, MemberHistoryResponse, BranchReportResponse, RecentAttemptsResponse,
    BranchResponse
)
from .persistence.postgres import PostgreSQLPersistence


class AdmissionService(BaseService):
    """Admission service implementation."""

    def __init__(self):
        super().__init__("admission", 8013)

        self.persistence = PostgreSQLPersistence(
            self.config.postgres_dsn,
            min_size=self.config.postgres_pool_min,
            max_size=self.config.postgres_pool_max,
            command_timeout=self.config.postgres_command_timeout
        )
        self.coordinator = AdmissionCoordinator(self.persistence, metrics=self.metrics)
        self.history = AttemptHistory(
            self.persistence,
            default_days=self.config.history_default_days,
            max_page_size=self.config.report_max_page_size
        )

        self._setup_admission_routes()

    def _setup_admission_routes(self):
        """Set up admission-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "admission",
                "message": "Gym Access - Admission Service",
                "version": "1.0.0",
                "capabilities": ["admission_check", "attempt_audit", "attempt_reports", "attempt_export"]
            }

        @self.app.post("/access/check", response_model=AdmissionCheckResponse)
        async def check_access(request: AdmissionCheckRequest):
            """Decide whether a member may pass a checkpoint and record the attempt."""
            self.observability.trace_request(
                member_id=request.member_id,
                branch_id=request.branch_id
            )

            try:
                decision = await self.coordinator.check_and_log(
                    request.member_id,
                    request.branch_id,
                    device_id=request.device_id,
                    source=request.source
                )
            except AccessLayerException as e:
                self.observability.log_business_event(
                    "admission_rejected",
                    member_id=request.member_id,
                    branch_id=request.branch_id,
                    code=e.code
                )
                raise
            except Exception as e:
                self.observability.log_error("admission_check_failed", str(e))
                raise ServiceError("Admission check failed") from e

            self.observability.log_business_event(
                "admission_decision",
                member_id=request.member_id,
                branch_id=request.branch_id,
                granted=decision.granted,
                reason=decision.reason.value
            )

            return AdmissionCheckResponse(granted=decision.granted, reason=decision.reason)

        @self.app.get("/access/members/{member_id}/attempts", response_model=MemberHistoryResponse)
        async def get_member_attempts(
            member_id: str,
            days: Optional[int] = Query(None, ge=1, le=366, description="Look-back window in days")
        ):
            """Recent attempts for a member."""
            attempts, visit_days, window = await self.history.member_history(member_id, days)

            return MemberHistoryResponse(
                member_id=member_id,
                days=window,
                visit_days=visit_days,
                items=[AttemptResponse.from_record(a) for a in attempts]
            )

        @self.app.get("/access/branches/{branch_id}/attempts", response_model=BranchReportResponse)
        async def get_branch_attempts(
            branch_id: str,
            date_from: Optional[str] = Query(None, alias="from", description="YYYY-MM-DD or ISO timestamp"),
            date_to: Optional[str] = Query(None, alias="to", description="YYYY-MM-DD (whole day) or ISO timestamp"),
            result: Optional[AccessResult] = Query(None, description="Filter by result"),
            page: int = Query(0, ge=0, description="Page number, starting at 0"),
            size: int = Query(20, ge=1, description="Items per page")
        ):
            """Attempt report for a branch."""
            attempts, total = await self.history.branch_report(
                branch_id,
                date_from=parse_report_bound(date_from),
                date_to=parse_report_bound(date_to, end_of_day=True),
                result=result,
                page=page,
                size=size
            )

            return BranchReportResponse(
                branch_id=branch_id,
                items=[AttemptResponse.from_record(a) for a in attempts],
                total=total,
                page=page,
                size=size,
                total_pages=math.ceil(total / size)
            )

        @self.app.get("/access/branches/{branch_id}/attempts/recent", response_model=RecentAttemptsResponse)
        async def get_recent_branch_attempts(
            branch_id: str,
            limit: int = Query(20, ge=1, description="Maximum number of attempts")
        ):
            """Latest attempts at a branch."""
            attempts = await self.history.recent_for_branch(branch_id, limit)

            return RecentAttemptsResponse(
                branch_id=branch_id,
                items=[AttemptResponse.from_record(a) for a in attempts],
                total=len(attempts)
            )

        @self.app.get("/access/branches/{branch_id}/attempts/export")
        async def export_branch_attempts(
            branch_id: str,
            date_from: Optional[str] = Query(None, alias="from", description="YYYY-MM-DD or ISO timestamp"),
            date_to: Optional[str] = Query(None, alias="to", description="YYYY-MM-DD (whole day) or ISO timestamp"),
            result: Optional[AccessResult] = Query(None, description="Filter by result")
        ):
            """Branch attempt report as a CSV download."""
            content = await self.history.export_csv(
                branch_id,
                date_from=parse_report_bound(date_from),
                date_to=parse_report_bound(date_to, end_of_day=True),
                result=result
            )

            return Response(
                content=content,
                media_type="text/csv; charset=utf-8",
                headers={"Content-Disposition": f'attachment; filename="attempts-{branch_id}.csv"'}
            )

        @self.app.get("/branches", response_model=List[BranchResponse])
        async def list_branches(active_only: bool = Query(False, description="Only active branches")):
            """List branches ordered by name."""
            branches = await self.history.list_branches(active_only)
            return [BranchResponse.from_branch(b) for b in branches]

        @self.app.get("/access/stats")
        async def get_stats():
            """Get admission statistics."""
            return {
                "attempts": await self.history.stats(),
                "persistence": "ok" if await self.persistence.health_check() else "error",
                "timestamp": datetime.now().isoformat()
            }

    async def _check_dependencies(self):
        """Check admission service dependencies."""
        return {
            "postgres": "ok" if await self.persistence.health_check() else "error"
        }

    async def start(self):
        """Start admission service components."""
        await self.persistence.start()
        self.logger.info("Admission service started")

    async def stop(self):
        """Stop admission service components."""
        await self.persistence.stop()
        self.logger.info("Admission service stopped")


def create_app():
    """Create admission service application."""
    service = AdmissionService()
    return service.app


def run():
    """Run the admission service with uvicorn."""
    AdmissionService().run()


if __name__ == "__main__":
    run()
