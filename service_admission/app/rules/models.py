"""
Admission data models: member state, branches, decisions and attempt records.
"""

from typing import Optional, List
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class AccessStatus(str, Enum):
    """Member-level access flag."""
    ACTIVE = "ACTIVE"
    NOT_ENROLLED = "NOT_ENROLLED"
    BLOCKED = "BLOCKED"


class MembershipType(str, Enum):
    """Membership plans."""
    MULTI_SITE_ANNUAL = "MULTI_SITE_ANNUAL"
    SINGLE_SITE_ANNUAL = "SINGLE_SITE_ANNUAL"
    SINGLE_SITE_MONTHLY = "SINGLE_SITE_MONTHLY"

    @property
    def is_single_site(self) -> bool:
        return self in SINGLE_SITE_TYPES


SINGLE_SITE_TYPES = frozenset({MembershipType.SINGLE_SITE_ANNUAL, MembershipType.SINGLE_SITE_MONTHLY})


class MembershipStatus(str, Enum):
    """Membership lifecycle status."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class EnrollmentStatus(str, Enum):
    """Biometric enrollment status."""
    NOT_ENROLLED = "NOT_ENROLLED"
    ENROLLED = "ENROLLED"


class AccessResult(str, Enum):
    """Outcome stored on an attempt record."""
    GRANTED = "GRANTED"
    DENIED = "DENIED"


class AccessSource(str, Enum):
    """Where an admission check originated."""
    BIOMETRIC = "BIOMETRIC"
    MANUAL = "MANUAL"
    BACKOFFICE = "BACKOFFICE"
    TEST = "TEST"


class ReasonCode(str, Enum):
    """Reason codes, one per admission rule plus OK."""
    OK = "OK"
    BLOCKED = "BLOCKED"
    MEMBERSHIP_NOT_ACTIVE = "MEMBERSHIP_NOT_ACTIVE"
    NOT_ENROLLED = "NOT_ENROLLED"
    BRANCH_NOT_AUTHORIZED = "BRANCH_NOT_AUTHORIZED"


@dataclass(frozen=True)
class Branch:
    """Gym branch as seen by the admission engine."""
    branch_id: str
    name: str
    code: str
    active: bool = True
    address: Optional[str] = None


@dataclass(frozen=True)
class Membership:
    """A member's membership snapshot."""
    membership_type: MembershipType
    status: MembershipStatus
    start_date: date
    end_date: date
    assigned_branch: Optional[Branch] = None


@dataclass(frozen=True)
class Enrollment:
    """A member's biometric enrollment snapshot (payload not loaded)."""
    status: EnrollmentStatus


@dataclass(frozen=True)
class MemberState:
    """Everything the admission policy needs to know about a member."""
    member_id: str
    access_status: AccessStatus
    membership: Optional[Membership] = None
    enrollment: Optional[Enrollment] = None


@dataclass(frozen=True)
class Decision:
    """Result of an admission evaluation."""
    granted: bool
    reason: ReasonCode

    @property
    def result(self) -> AccessResult:
        return AccessResult.GRANTED if self.granted else AccessResult.DENIED


@dataclass(frozen=True)
class AttemptRecord:
    """Immutable audit row for one admission check.

    ``attempt_id`` and ``created_at`` are assigned by the store; records
    handed to the recorder must leave them unset.
    """
    member_id: str
    branch_id: str
    result: AccessResult
    source: AccessSource
    reason: ReasonCode
    device_id: Optional[str] = None
    attempt_id: Optional[str] = None
    created_at: Optional[datetime] = None
    branch_name: Optional[str] = None


@dataclass(frozen=True)
class BranchReportFilters:
    """Filters for the per-branch attempt report."""
    branch_id: str
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    result: Optional[AccessResult] = None
    page: int = 0
    size: int = 20


class AdmissionCheckRequest(BaseModel):
    """Request model for an admission check."""
    member_id: str = Field(..., min_length=1, description="Member ID")
    branch_id: str = Field(..., min_length=1, description="Branch the checkpoint belongs to")
    device_id: Optional[str] = Field(None, max_length=80, description="Turnstile/camera identifier")
    source: Optional[AccessSource] = Field(None, description="Origin of the check, BIOMETRIC when omitted")


class AdmissionCheckResponse(BaseModel):
    """Response model for an admission check."""
    granted: bool = Field(..., description="Whether the member may pass")
    reason: ReasonCode = Field(..., description="Rule that decided the outcome")


class AttemptResponse(BaseModel):
    """One attempt record as returned by history endpoints."""
    attempt_id: str
    member_id: str
    branch_id: str
    branch_name: Optional[str] = None
    device_id: Optional[str] = None
    result: AccessResult
    source: AccessSource
    reason: ReasonCode
    created_at: datetime

    @classmethod
    def from_record(cls, record: AttemptRecord) -> "AttemptResponse":
        return cls(
            attempt_id=record.attempt_id,
            member_id=record.member_id,
            branch_id=record.branch_id,
            branch_name=record.branch_name,
            device_id=record.device_id,
            result=record.result,
            source=record.source,
            reason=record.reason,
            created_at=record.created_at,
        )


class MemberHistoryResponse(BaseModel):
    """Recent attempts for a member."""
    member_id: str
    days: int
    visit_days: int = Field(..., description="Distinct days with a granted attempt in the window")
    items: List[AttemptResponse]


class BranchReportResponse(BaseModel):
    """Paged attempt report for a branch."""
    branch_id: str
    items: List[AttemptResponse]
    total: int
    page: int
    size: int
    total_pages: int


class RecentAttemptsResponse(BaseModel):
    """Latest attempts at a branch."""
    branch_id: str
    items: List[AttemptResponse]
    total: int


class BranchResponse(BaseModel):
    """Branch directory entry."""
    branch_id: str
    name: str
    code: str
    address: Optional[str] = None
    active: bool

    @classmethod
    def from_branch(cls, branch: Branch) -> "BranchResponse":
        return cls(
            branch_id=branch.branch_id,
            name=branch.name,
            code=branch.code,
            address=branch.address,
            active=branch.active,
        )
