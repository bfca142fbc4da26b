"""
Admission rules package.

Defines the member/branch snapshot model and the admission policy used by
the Admission Service. The policy is a pure, ordered rule list returning a
grant/deny decision with a reason code that is both returned to the
checkpoint and written to the audit trail.

Modules of interest:
- models: Enums, frozen snapshots (MemberState, Branch), Decision,
  AttemptRecord and the API request/response models.
- engine: AdmissionPolicy, the rule evaluation itself.
"""
