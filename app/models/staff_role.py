from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum
from uuid import UUID


class StaffRoleName(str, Enum):
    WORKER = "WORKER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class RoleStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    EXPIRED = 'expired'


class StaffRole(SQLModel, table=True):
    __tablename__ = "staff_role"
    user_id: UUID = Field(primary_key=True)
    role: StaffRoleName = Field(primary_key=True)
    status: RoleStatus = Field(default=RoleStatus.PENDING)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow}
    )
