"""
Task Board Service

Authoritative server side of the collaborative project board:
- Projects with an immutable owner, authorized personnel and recruited team members
- Role recruitment with a fill-capacity invariant (filled never exceeds needed)
- Per-project task collection embedded in the project document
- Deterministic task state machine: pending -> in-progress -> completed -> verified
- Single permission evaluator computing one ActorRole per request
- Owner-only creation, deletion and verification
- Assignee-only, status-only updates for non-owners
- Optimistic concurrency via per-task version numbers
- Append-only audit trail of every task mutation attempt

The board client (board_client package) mirrors the same permission rules locally
for responsiveness, but this service is the single enforcement point.
"""

__version__ = "0.4.0"

SERVICE_NAME = "Task Board Service"
