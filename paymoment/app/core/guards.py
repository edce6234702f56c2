"""
Security guards for admin-only endpoints.
"""

from fastapi import Depends
from paymoment.app.core.dependencies import get_current_user
from paymoment.app.core.exceptions import InsufficientPermissionsError


def require_admin(current_user: dict = Depends(get_current_user)) -> dict:
    """
    Dependency for admin-only endpoints.

    Usage:
        @router.post("/admin/ops/resume-credits")
        async def resume(admin: dict = Depends(require_admin)):
            ...

    Raises:
        InsufficientPermissionsError (403) if the account is not a superuser
    """
    if not current_user.get("is_superuser"):
        raise InsufficientPermissionsError("Admin access required")

    return current_user
