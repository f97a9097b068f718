from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class ServiceBase(SQLModel):
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    price: Optional[Decimal] = Field(default=None, max_digits=12, decimal_places=2)
    # Share of the line price credited to the washer, 0-100
    washer_commission_percentage: Optional[Decimal] = Field(
        default=None, max_digits=5, decimal_places=2)
    # Share of the line price booked as company income, 0-100
    company_commission_percentage: Optional[Decimal] = Field(
        default=None, max_digits=5, decimal_places=2)
    is_active: bool = Field(default=True)


class Service(ServiceBase, table=True):
    __tablename__ = "service"
    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        nullable=False,
        sa_column_kwargs={"onupdate": datetime.utcnow}
    )
