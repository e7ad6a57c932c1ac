"""
Engagement Kernel - project engagement lifecycle.

A transactional core for freelance-style engagements with:
- Guarded project and contract state machines
- Atomic conditional updates for per-project mutual exclusion
- Exactly-once application of payment notifications
- Typed, machine-readable errors
"""

__version__ = "0.1.0"
