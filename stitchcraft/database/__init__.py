"""Database package for StitchCraft."""
from .connection import close_db, get_db, get_session_factory, init_db
from .models import (
    Appointment,
    AuditLog,
    Base,
    Client,
    ClientMeasurement,
    ClientTrackingToken,
    Invoice,
    Order,
    OrderRating,
    Organization,
    OrganizationMember,
    Payment,
    Session,
    User,
)

__all__ = [
    "Base",
    "User",
    "Session",
    "Organization",
    "OrganizationMember",
    "Client",
    "ClientMeasurement",
    "ClientTrackingToken",
    "Order",
    "Invoice",
    "Payment",
    "Appointment",
    "OrderRating",
    "AuditLog",
    "get_db",
    "get_session_factory",
    "init_db",
    "close_db",
]
