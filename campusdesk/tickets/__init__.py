"""
Tickets Module
==============

Ticket aggregate, status state machine, TAT calculator and activity log.

Clean Architecture Layers:
- domain: state machine, TAT arithmetic, SLA configuration
- application: TicketLifecycleService and DTOs
- infrastructure: SQLAlchemy models/repositories, SLA config file manager
- interfaces: FastAPI routes
"""
