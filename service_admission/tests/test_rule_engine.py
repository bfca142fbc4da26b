"""
Unit tests for the admission policy.
"""

import pytest

from service_admission.app.rules.engine import AdmissionPolicy
from service_admission.app.rules.models import (
    AccessStatus, MembershipType, MembershipStatus, EnrollmentStatus,
    AccessResult, ReasonCode, Decision
)


class TestAdmissionPolicy:
    """Test cases for AdmissionPolicy."""

    @pytest.fixture
    def policy(self):
        """Create AdmissionPolicy instance."""
        return AdmissionPolicy()

    @pytest.mark.parametrize("membership_type", [None, *MembershipType])
    @pytest.mark.parametrize("membership_status", list(MembershipStatus))
    @pytest.mark.parametrize("enrollment_status", [None, *EnrollmentStatus])
    def test_blocked_member_always_denied(self, policy, make_member, branch_b1,
                                          membership_type, membership_status, enrollment_status):
        """A blocked member is denied as BLOCKED whatever else is true."""
        member = make_member(
            access_status=AccessStatus.BLOCKED,
            membership_type=membership_type,
            membership_status=membership_status,
            assigned_branch=branch_b1,
            enrollment_status=enrollment_status
        )

        decision = policy.evaluate(member, branch_b1)

        assert decision == Decision(granted=False, reason=ReasonCode.BLOCKED)

    @pytest.mark.parametrize("access_status", [AccessStatus.ACTIVE, AccessStatus.NOT_ENROLLED])
    def test_missing_membership_denied(self, policy, make_member, branch_b1, access_status):
        """No membership means MEMBERSHIP_NOT_ACTIVE."""
        member = make_member(access_status=access_status, membership_type=None)

        decision = policy.evaluate(member, branch_b1)

        assert decision.granted is False
        assert decision.reason == ReasonCode.MEMBERSHIP_NOT_ACTIVE

    def test_expired_membership_denied_before_enrollment(self, policy, make_member, branch_b1):
        """An expired membership is reported even when the member is not enrolled."""
        member = make_member(
            membership_status=MembershipStatus.EXPIRED,
            enrollment_status=EnrollmentStatus.NOT_ENROLLED
        )

        decision = policy.evaluate(member, branch_b1)

        assert decision.reason == ReasonCode.MEMBERSHIP_NOT_ACTIVE

    @pytest.mark.parametrize("enrollment_status", [None, EnrollmentStatus.NOT_ENROLLED])
    def test_not_enrolled_denied(self, policy, make_member, branch_b1, enrollment_status):
        """Active membership without an enrollment is NOT_ENROLLED."""
        member = make_member(enrollment_status=enrollment_status)

        decision = policy.evaluate(member, branch_b1)

        assert decision == Decision(granted=False, reason=ReasonCode.NOT_ENROLLED)

    def test_not_enrolled_wins_over_branch_scope(self, policy, make_member, branch_b1, branch_b2):
        """Enrollment is checked before branch scoping."""
        member = make_member(
            membership_type=MembershipType.SINGLE_SITE_MONTHLY,
            assigned_branch=branch_b1,
            enrollment_status=EnrollmentStatus.NOT_ENROLLED
        )

        decision = policy.evaluate(member, branch_b2)

        assert decision.reason == ReasonCode.NOT_ENROLLED

    @pytest.mark.parametrize("membership_type", [
        MembershipType.SINGLE_SITE_ANNUAL,
        MembershipType.SINGLE_SITE_MONTHLY,
    ])
    def test_single_site_other_branch_denied(self, policy, make_member, branch_b1, branch_b2, membership_type):
        """Single-site plans are denied at any branch but their own."""
        member = make_member(membership_type=membership_type, assigned_branch=branch_b1)

        decision = policy.evaluate(member, branch_b2)

        assert decision == Decision(granted=False, reason=ReasonCode.BRANCH_NOT_AUTHORIZED)

    @pytest.mark.parametrize("membership_type", [
        MembershipType.SINGLE_SITE_ANNUAL,
        MembershipType.SINGLE_SITE_MONTHLY,
    ])
    def test_single_site_without_assigned_branch_denied(self, policy, make_member, branch_b1, membership_type):
        """A single-site plan with no assigned branch is never authorized."""
        member = make_member(membership_type=membership_type, assigned_branch=None)

        decision = policy.evaluate(member, branch_b1)

        assert decision.reason == ReasonCode.BRANCH_NOT_AUTHORIZED

    def test_single_site_home_branch_granted(self, policy, make_member, branch_b1):
        """Scenario: single-site monthly member at their assigned branch."""
        member = make_member(membership_type=MembershipType.SINGLE_SITE_MONTHLY, assigned_branch=branch_b1)

        decision = policy.evaluate(member, branch_b1)

        assert decision == Decision(granted=True, reason=ReasonCode.OK)
        assert decision.result == AccessResult.GRANTED

    @pytest.mark.parametrize("assigned", ["b1", "b2", None])
    def test_multi_site_granted_anywhere(self, policy, make_member, branch_b1, branch_b2, assigned):
        """Multi-site plans ignore the assigned branch entirely."""
        assigned_branch = {"b1": branch_b1, "b2": branch_b2, None: None}[assigned]
        member = make_member(membership_type=MembershipType.MULTI_SITE_ANNUAL, assigned_branch=assigned_branch)

        assert policy.evaluate(member, branch_b1) == Decision(granted=True, reason=ReasonCode.OK)
        assert policy.evaluate(member, branch_b2) == Decision(granted=True, reason=ReasonCode.OK)

    def test_not_enrolled_access_flag_is_not_a_block(self, policy, make_member, branch_b1):
        """Only BLOCKED short-circuits; the NOT_ENROLLED flag defers to enrollment data."""
        member = make_member(access_status=AccessStatus.NOT_ENROLLED)

        decision = policy.evaluate(member, branch_b1)

        assert decision.granted is True

    def test_evaluate_is_deterministic(self, policy, make_member, branch_b1, branch_b2):
        """Evaluating the same input twice yields the same decision."""
        member = make_member(membership_type=MembershipType.SINGLE_SITE_ANNUAL, assigned_branch=branch_b1)

        first = policy.evaluate(member, branch_b2)
        second = policy.evaluate(member, branch_b2)

        assert first == second
        assert AdmissionPolicy().evaluate(member, branch_b2) == first

    def test_denied_decision_maps_to_denied_result(self):
        """Decision.result mirrors granted."""
        assert Decision(granted=False, reason=ReasonCode.BLOCKED).result == AccessResult.DENIED
