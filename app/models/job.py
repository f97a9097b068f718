from typing import Optional, Tuple
from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, ConfigDict

from app.models.check_in import CheckInStatus


class LineItem(BaseModel):
    """One priced service of a completed job, with its commission already resolved."""
    model_config = ConfigDict(frozen=True)

    service_id: Optional[int] = None
    price: Optional[Decimal] = None
    commission_percentage: Optional[Decimal] = None
    company_commission_percentage: Optional[Decimal] = None


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    assigned_worker_id: Optional[UUID] = None
    status: CheckInStatus = CheckInStatus.COMPLETED
    line_items: Tuple[LineItem, ...] = ()
    completed_at: Optional[datetime] = None
