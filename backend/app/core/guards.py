"""
Security guards for role-based and tenant-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List, Optional
from fastapi import Depends, HTTPException, status
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/loads/{load_id}/assign")
        async def assign(current_user: dict = Depends(require_role([UserRole.DISPATCHER]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role = UserRole(current_user["role"])

        # Admins pass every role check
        if user_role != UserRole.ADMIN and user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


class CompanyScopeGuard:
    """
    Tenant guard for loads.

    Admins see every company; dispatchers and drivers only their own.
    Drivers may additionally only act on loads assigned to them.
    """

    def filter_by_company(self, current_user: dict) -> Optional[str]:
        """Company id to filter queries by, or None for admins."""
        if current_user.get("role") == UserRole.ADMIN.value:
            return None
        return current_user.get("company_id")

    def enforce(self, load, current_user: dict):
        """Raise 404 for loads outside the caller's company, 403 for drivers on foreign loads."""
        company_id = self.filter_by_company(current_user)
        if company_id is not None and load.company_id not in (None, company_id):
            # Foreign tenants must not learn the load exists
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Load not found"
            )

        if current_user.get("role") == UserRole.DRIVER.value:
            if load.driver_id != current_user.get("driver_id"):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="This load is not assigned to you"
                )


    def enforce_driver(self, driver, current_user: dict):
        """Raise 404 for fleet drivers outside the caller's company."""
        company_id = self.filter_by_company(current_user)
        if company_id is not None and driver.company_id not in (None, company_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Driver not found"
            )


def actor_of(current_user: dict) -> str:
    """Identity recorded as the author of tracking events."""
    return current_user["sub"]
