"""
Authentication and Authorization Middleware
JWT token validation and role-based access control
"""

from enum import Enum
from typing import Optional, Callable
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from lawnroute.utils.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    LawnRouteException,
    RoleRequiredError,
)
from lawnroute.utils.security import verify_token, TokenData


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SUPERVISOR = "supervisor"
    OPERATOR = "operator"
    HELPER = "helper"


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def get_token_data(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenData]:
    """
    Extract and validate token from Authorization header

    Returns TokenData if valid token, None if no token provided
    Raises InvalidTokenError if token is invalid
    """
    if credentials is None:
        return None

    token_data = verify_token(credentials.credentials, token_type="access")

    if token_data is None:
        raise InvalidTokenError()

    return token_data


async def get_current_principal(
    token_data: Optional[TokenData] = Depends(get_token_data)
) -> TokenData:
    """
    Get the authenticated caller from the token

    Raises AuthenticationError if not authenticated, AuthorizationError if
    the role is unknown
    """
    if token_data is None:
        raise AuthenticationError()

    if token_data.role not in {r.value for r in UserRole}:
        raise AuthorizationError(f"Role '{token_data.role}' is not recognized")

    return token_data


def require_roles(*allowed_roles: UserRole) -> Callable:
    """
    Dependency factory for role-based access control

    Usage:
        @router.post("/plan")
        async def plan(principal: TokenData = Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN))):
            ...
    """
    async def role_checker(
        principal: TokenData = Depends(get_current_principal)
    ) -> TokenData:
        if principal.role not in {r.value for r in allowed_roles}:
            raise RoleRequiredError([r.value for r in allowed_roles])
        return principal

    return role_checker


# Convenience dependency instances
require_planner = require_roles(UserRole.MANAGER, UserRole.ADMIN)
require_crew_member = require_roles(*UserRole)


async def get_current_business_id(
    principal: TokenData = Depends(get_current_principal)
) -> str:
    """
    Dependency to get the caller's business_id
    """
    if not principal.business_id:
        raise LawnRouteException(
            code="NO_BUSINESS",
            message="User is not associated with any business"
        )
    return principal.business_id
