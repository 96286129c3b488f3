"""
Shared enumerations for users and entities.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Platform administrator, can act on any entity
        DONOR: Posts donations and claims open requests
        RECIPIENT: Posts requests and claims available donations
        VOLUNTEER: Picks up and delivers claimed donations
    """
    ADMIN = "admin"
    DONOR = "donor"
    RECIPIENT = "recipient"
    VOLUNTEER = "volunteer"


class DeliveryMode(str, enum.Enum):
    """How a claimed donation reaches the recipient."""
    VOLUNTEER = "volunteer"  # Volunteer picks up and delivers
    DIRECT = "direct"  # Donor delivers in person


class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
