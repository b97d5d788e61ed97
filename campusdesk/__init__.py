"""
CampusDesk
==========

Ticket lifecycle engine for an institutional helpdesk: status state machine,
TAT (SLA) deadlines, automatic escalation and a transactional outbox for
notifications.
"""

__version__ = "1.0.0"
