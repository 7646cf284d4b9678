from typing import List, Optional

from sqlalchemy.orm import Session

from cloudserve.models import AppRole, Profile, UserRoleAssignment


def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    return db.query(Profile).filter(Profile.user_id == user_id).first()


def get_profile_by_customer(db: Session, stripe_customer_id: str) -> Optional[Profile]:
    if not stripe_customer_id:
        return None
    return db.query(Profile).filter(Profile.stripe_customer_id == stripe_customer_id).first()


def get_profiles_with_email(db: Session) -> List[Profile]:
    return db.query(Profile).filter(Profile.email.isnot(None)).all()


def has_role(db: Session, user_id: str, role: AppRole) -> bool:
    """
    Check whether a user has been granted a role
    """
    return (
        db.query(UserRoleAssignment)
        .filter(UserRoleAssignment.user_id == user_id, UserRoleAssignment.role == role)
        .first()
        is not None
    )
