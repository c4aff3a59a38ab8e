"""
Credit Workflow Engine

A data-driven workflow orchestration core for corporate credit cases:
- Persisted stage/transition definitions interpreted at evaluation time
- Role-gated transitions with a superuser bypass
- Mandatory-comment policy per transition
- SLA deadline tracking with an idempotent breach sweep
- Append-only transition audit trail per case
"""

__version__ = "0.1.0"
