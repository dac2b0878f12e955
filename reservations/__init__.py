"""
Room reservation notification core - platform-agnostic.

Used by the reservation API (before and after it persists bookings) and by
the email worker process.
"""

# Database (SQLAlchemy)
from .database import get_connection, get_transaction, get_engine, close_engine, is_configured

# Booking snapshots
from .types import Booking, parse_email_list

# Recurrence expansion
from .recurrence import (
    Occurrence, RecurrenceRule, ValidationError,
    expand, expand_reservation, validate_recurrence_payload,
)

# Booking mutation helpers
from .bookings import materialize_reservation

__all__ = [
    # Database (SQLAlchemy)
    'get_connection', 'get_transaction', 'get_engine', 'close_engine', 'is_configured',
    # Booking snapshots
    'Booking', 'parse_email_list',
    # Recurrence
    'Occurrence', 'RecurrenceRule', 'ValidationError',
    'expand', 'expand_reservation', 'validate_recurrence_payload',
    # Booking mutation
    'materialize_reservation',
]
