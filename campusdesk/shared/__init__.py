"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (tickets,
escalation, notifications).

Architecture Pattern: Modular Monolith
- Each module (tickets, escalation, notifications) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add ticket lifecycle rules to the shared kernel.
"""
