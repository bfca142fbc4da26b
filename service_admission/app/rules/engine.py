"""
Admission rule evaluation for the Admission Service.
"""

from shared.logging import get_logger
from .models import (
    AccessStatus, MembershipStatus, EnrollmentStatus, ReasonCode,
    MemberState, Branch, Decision
)


class AdmissionPolicy:
    """Decides whether a member may pass a checkpoint at a branch.

    Rules are checked in a fixed order and the first one that fails
    determines the reason code, so a blocked member with an expired
    membership is reported as BLOCKED:

    1. member blocked                          -> BLOCKED
    2. no membership or membership not active  -> MEMBERSHIP_NOT_ACTIVE
    3. no enrollment or not enrolled           -> NOT_ENROLLED
    4. single-site plan at another branch      -> BRANCH_NOT_AUTHORIZED
    5. otherwise                               -> OK (granted)

    Multi-site plans are valid at every branch and skip rule 4. Whether the
    requested branch is active is checked by the caller.

    ``evaluate`` performs no I/O and holds no state between calls.
    """

    def __init__(self):
        self.logger = get_logger("admission.policy")

    def evaluate(self, member: MemberState, branch_requested: Branch) -> Decision:
        """Evaluate the admission rules for a member at a branch."""
        decision = self._decide(member, branch_requested)

        self.logger.debug(
            "Admission rule evaluated",
            member_id=member.member_id,
            branch_id=branch_requested.branch_id,
            granted=decision.granted,
            reason=decision.reason.value
        )

        return decision

    def _decide(self, member: MemberState, branch_requested: Branch) -> Decision:
        if member.access_status == AccessStatus.BLOCKED:
            return Decision(granted=False, reason=ReasonCode.BLOCKED)

        membership = member.membership
        if membership is None or membership.status != MembershipStatus.ACTIVE:
            return Decision(granted=False, reason=ReasonCode.MEMBERSHIP_NOT_ACTIVE)

        enrollment = member.enrollment
        if enrollment is None or enrollment.status != EnrollmentStatus.ENROLLED:
            return Decision(granted=False, reason=ReasonCode.NOT_ENROLLED)

        if membership.membership_type.is_single_site:
            # Assigned branch is mandatory for single-site plans but may be
            # missing in stale or hand-edited rows.
            assigned = membership.assigned_branch
            if assigned is None or assigned.branch_id != branch_requested.branch_id:
                return Decision(granted=False, reason=ReasonCode.BRANCH_NOT_AUTHORIZED)

        return Decision(granted=True, reason=ReasonCode.OK)
