"""CampusFix: facility issue reporting for student residences.

Modules:
    - lifecycle: status transition table, audit trail, dual-confirmation resolution
    - notifications: audience targeting and the notification dispatcher
    - repositories: issue/notification persistence (PostgreSQL and in-memory)
    - realtime: change feed behind the live issue and inbox streams
    - services: the issue lifecycle service
    - routes: FastAPI routers
"""

__version__ = "0.1.0"
