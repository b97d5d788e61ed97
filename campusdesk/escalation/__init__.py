"""
Escalation Module
=================

Escalation rules, the shared escalation write path and the periodic
breach scanner.
"""
