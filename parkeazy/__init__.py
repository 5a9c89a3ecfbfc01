"""
Park-Eazy reservation core

Reservation lifecycle, payment-method vault, checkout with simulated
settlement, slot registry and audit logging for a role-based
parking-reservation system.
"""

__version__ = "1.0.0"
