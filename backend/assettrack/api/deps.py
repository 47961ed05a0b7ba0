"""
Request dependencies shared by the API routes.
"""

from fastapi import Header

from assettrack.services.audit_logger import SYSTEM_USER, UserContext


async def get_current_user(
    x_user_id: int | None = Header(None),
    x_username: str | None = Header(None),
) -> UserContext:
    """Acting user for audit entries. Requests without user headers act as System."""
    if x_user_id is None:
        return SYSTEM_USER
    return UserContext(user_id=x_user_id, username=x_username or f"user-{x_user_id}")
