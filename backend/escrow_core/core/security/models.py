"""
Security models - Roles enum
"""

import enum


class Role(str, enum.Enum):
    """Platform roles (supplied by the identity service)"""
    RETAILER = "RETAILER"
    WHOLESALER = "WHOLESALER"
    DELIVERY_AGENT = "DELIVERY_AGENT"
    ADMIN = "ADMIN"
