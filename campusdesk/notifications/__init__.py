"""
Notifications Module
====================

Transactional outbox: event payloads, the dispatcher and the Slack/email
senders it delivers through.
"""
