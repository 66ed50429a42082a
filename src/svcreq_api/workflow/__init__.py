"""
Service Request Workflow Module

Approval workflows for IT equipment (item) and service vehicle requests:
- Role-gated state machine with optimistic concurrency
- Pending-approver resolution with super administrator fallback
- Vehicle verification lane (non-blocking)
- Structured audit events
"""

__version__ = "1.0.0"
