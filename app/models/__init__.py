# Models module: tables (SQLModel) and request/response schemas (Pydantic)
# Tables referenced by a foreign key must be imported before the tables that point at them

from .staff_role import StaffRole, StaffRoleName, RoleStatus
from .service import Service
from .check_in import CheckIn, CheckInService, CheckInStatus
from .custody import CustodyRecord, ConsumptionRecord, ItemKind, CustodyRecordRead
from .worker_account import WorkerAccount, WorkerEarningsRead
from .payment_request import PaymentRequest, PaymentRequestStatus, PaymentRequestRead
from .earnings_transaction import EarningsTransaction, EarningsTransactionType
from .job import Job, LineItem
from .deduction import DeductionSummary, UnreturnedItem
