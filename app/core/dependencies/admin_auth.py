from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session, select
from uuid import UUID

from app.core.db import get_session
from app.core.dependencies.auth import decode_subject
from app.models.staff_role import StaffRole, StaffRoleName, RoleStatus

bearer_scheme = HTTPBearer()

STAFF_ROLES = (StaffRoleName.ADMIN, StaffRoleName.SUPER_ADMIN)


def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session)
) -> UUID:
    """
    Authenticated user holding an approved staff role. Each action is still
    checked by the payment request authorizer.
    """
    user_id = decode_subject(credentials.credentials)
    role = session.exec(
        select(StaffRole).where(
            StaffRole.user_id == user_id,
            StaffRole.role.in_(STAFF_ROLES),
            StaffRole.status == RoleStatus.APPROVED,
        )
    ).first()
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized as administrator",
        )
    return user_id
