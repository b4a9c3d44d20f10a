"""
SLA & Escalation Module
=======================

Bounded context for ticket service levels.

Responsibilities:
- Enforce the ticket status state machine
- Compute response/resolution deadlines on a working calendar
- Pause and resume SLA clocks
- Escalate tickets up a per-department ladder
- Sweep open tickets for breach risk and auto-escalate
"""

__version__ = "1.0.0"
