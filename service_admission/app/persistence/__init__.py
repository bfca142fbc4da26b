"""
Persistence package.

- postgres: asyncpg pool, schema bootstrap and the unit of work envelope.
- repositories: MemberStateReader, BranchDirectory and AuditRecorder, each
  bound to a single connection.
"""
