from typing import Protocol
from uuid import UUID
from sqlmodel import Session, select
from app.models.staff_role import StaffRole, StaffRoleName, RoleStatus
import logging

logger = logging.getLogger(__name__)

APPROVE = "approve"
REJECT = "reject"
PAY = "pay"

# Roles allowed to move a payment request forward
ACTION_ROLES = {
    APPROVE: (StaffRoleName.ADMIN, StaffRoleName.SUPER_ADMIN),
    REJECT: (StaffRoleName.ADMIN, StaffRoleName.SUPER_ADMIN),
    PAY: (StaffRoleName.ADMIN, StaffRoleName.SUPER_ADMIN),
}


class Authorizer(Protocol):
    def is_authorized(self, user_id: UUID, action: str) -> bool:
        ...


class RoleAuthorizer:
    """Grants an action when the user holds an approved staff role that allows it."""

    def __init__(self, session: Session):
        self.session = session

    def is_authorized(self, user_id: UUID, action: str) -> bool:
        roles = ACTION_ROLES.get(action)
        if not roles or user_id is None:
            return False
        granted = self.session.exec(
            select(StaffRole).where(
                StaffRole.user_id == user_id,
                StaffRole.role.in_(roles),
                StaffRole.status == RoleStatus.APPROVED,
            )
        ).first()
        if granted is None:
            logger.info("User %s is not allowed to %s payment requests", user_id, action)
        return granted is not None
