"""
Utility modules for LawnRoute
"""

from lawnroute.utils.security import (
    create_access_token,
    verify_token,
    TokenData
)

__all__ = [
    "create_access_token",
    "verify_token",
    "TokenData"
]
