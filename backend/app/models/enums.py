"""
User roles enumeration.

Roles are carried in identity tokens issued by the identity service.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: System-level access across companies
        DISPATCHER: Creates loads, assigns drivers, moves loads through dispatch
        DRIVER: Reports stop arrivals/departures and delivery on own loads
    """
    ADMIN = "ADMIN"
    DISPATCHER = "DISPATCHER"
    DRIVER = "DRIVER"
