"""
Middleware Module
"""

from lawnroute.middleware.auth import (
    UserRole,
    get_token_data,
    get_current_principal,
    get_current_business_id,
    require_roles,
    require_planner,
    require_crew_member,
)
