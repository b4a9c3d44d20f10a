"""
Ticket Desk
===========

Guest complaint / ticket handling backend with SLA tracking and
multi-level escalation.
"""

__version__ = "1.0.0"
