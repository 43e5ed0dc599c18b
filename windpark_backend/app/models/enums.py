"""
User roles enumeration.

Defines the role types carried in access tokens.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        SUPERADMIN: Operator staff with access to every capability
        ADMIN: Tenant administrator, may delete settlements and periods
        MANAGER: Runs settlements and issues credit notes
        VIEWER: Read-only access (default role)
    """
    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    VIEWER = "VIEWER"
