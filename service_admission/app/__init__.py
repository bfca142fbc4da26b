"""
Admission Service package.

Decides whether a gym member may pass a checkpoint at a branch and keeps
an append-only record of every attempt. It provides:

- app.main: API surface for admission checks, attempt history and health.
- app.rules: Member/branch snapshot model and the admission policy.
- app.coordinator: Resolve, decide and record inside one transaction.
- app.history: Read-only member history and branch reports.
- app.persistence: PostgreSQL pool, schema and repositories.

Guidelines:
- The service is stateless; rely on PostgreSQL for all state.
- Never return a decision whose attempt record was not committed.
- Keep rule evaluation pure and observable (metrics + logs).
"""
