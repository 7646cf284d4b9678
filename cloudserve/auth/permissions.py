"""
Role checks for FastAPI endpoints.

Roles live in the user_roles table rather than in the token, so every check
is a database lookup through crud.profile.has_role.
"""

from typing import List, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from cloudserve.auth.jwt_handler import verify_jwt_token
from cloudserve.crud import profile as profile_crud
from cloudserve.dependencies import get_db
from cloudserve.models import AppRole


def get_current_user(allowed_roles: Optional[List[AppRole]] = None):
    """
    Dependency factory to create a get_current_user dependency with role checking.

    Args:
        allowed_roles: Roles that may access the endpoint; the caller needs any one
                       of them. If None, any authenticated user can access.

    Example:
        @router.post("/admin/servers/sync")
        def sync(current_user=Depends(get_current_user([AppRole.ADMIN]))):
            ...
    """
    def dependency(current_user_data=Depends(verify_jwt_token), db: Session = Depends(get_db)):
        if not current_user_data:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required"
            )

        if allowed_roles is None:
            return current_user_data

        if not any(profile_crud.has_role(db, current_user_data["id"], role) for role in allowed_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied"
            )

        return current_user_data

    return dependency


require_admin = get_current_user([AppRole.ADMIN])


def is_admin(db: Session, user_id: str) -> bool:
    return profile_crud.has_role(db, user_id, AppRole.ADMIN)
