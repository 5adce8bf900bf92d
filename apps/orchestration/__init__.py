"""
Orchestration control plane.

Accepts commands against long-running orchestrations and guarantees:
- exactly-once effect per idempotency key (ControlPlaneAction ledger)
- optimistic concurrency on policy and task revisions
- an append-only audit trail (OrchestrationEvent)
- resumable, bounded-step deletion of an orchestration and its child rows
"""
