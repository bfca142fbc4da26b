"""
Admission coordinator: resolve, decide, record, all in one unit of work.
"""

import time
from typing import Optional

from shared.logging import get_logger
from shared.errors import NotFoundError, BranchInactiveError
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation

from .rules.engine import AdmissionPolicy
from .rules.models import AccessSource, AttemptRecord, Decision
from .persistence.postgres import PostgreSQLPersistence


class AdmissionCoordinator:
    """Runs admission checks against the backing store."""

    def __init__(self, persistence: PostgreSQLPersistence, policy: Optional[AdmissionPolicy] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.persistence = persistence
        self.policy = policy or AdmissionPolicy()
        self.metrics = metrics
        self.logger = get_logger("admission.coordinator")

    async def check_and_log(self, member_id: str, branch_id: str,
                            device_id: Optional[str] = None,
                            source: Optional[AccessSource] = None) -> Decision:
        """Decide whether a member may enter a branch and record the attempt.

        Raises NotFoundError when the member or branch does not exist and
        BranchInactiveError when the branch is disabled; neither writes an
        attempt. A StorageError means nothing was committed and no decision
        is returned.
        """
        source = source or AccessSource.BIOMETRIC
        start_time = time.time()

        with trace_operation("admission.check", member_id=member_id, branch_id=branch_id,
                             source=source.value):
            async with self.persistence.unit_of_work() as uow:
                member = await uow.members.get_by_id(member_id)
                if member is None:
                    raise NotFoundError("Member", member_id)

                branch = await uow.branches.get_by_id(branch_id)
                if branch is None:
                    raise NotFoundError("Branch", branch_id)
                if not branch.active:
                    raise BranchInactiveError(branch_id)

                decision = self.policy.evaluate(member, branch)

                attempt_id = await uow.attempts.append(AttemptRecord(
                    member_id=member.member_id,
                    branch_id=branch.branch_id,
                    device_id=device_id,
                    result=decision.result,
                    source=source,
                    reason=decision.reason
                ))

        duration = time.time() - start_time
        if self.metrics is not None:
            self.metrics.record_admission(decision.result.value, decision.reason.value, duration)

        self.logger.info(
            "Admission check committed",
            attempt_id=attempt_id,
            member_id=member_id,
            branch_id=branch_id,
            device_id=device_id,
            source=source.value,
            granted=decision.granted,
            reason=decision.reason.value,
            duration_ms=round(duration * 1000, 2)
        )

        return decision
