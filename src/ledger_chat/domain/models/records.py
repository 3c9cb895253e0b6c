"""Business records read from the record source.

``UserRecordSet`` is the only shape the document builder depends on, so any
persistence backend that can produce it can feed the assistant.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class DebtType(str, Enum):
    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class DebtStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"


class Product(BaseModel):
    id: str
    name: str
    acquisition_value: float
    quantity: int
    initial_quantity: int | None = None
    created_at: datetime


class Sale(BaseModel):
    id: str
    product_id: str | None = None
    product_name: str
    quantity_sold: int
    sale_value: float
    profit: float
    is_loss: bool = False
    loss_reason: str | None = None
    created_at: datetime


class Debt(BaseModel):
    id: str
    type: DebtType
    description: str
    amount: float
    amount_paid: float = 0.0
    status: DebtStatus = DebtStatus.PENDING
    contact_name: str | None = None
    due_date: datetime | None = None
    created_at: datetime

    @property
    def outstanding(self) -> float:
        return max(self.amount - self.amount_paid, 0.0)


class UserRecordSet(BaseModel):
    """Everything the assistant knows about one user's business."""

    user_id: str
    products: list[Product] = Field(default_factory=list)
    sales: list[Sale] = Field(default_factory=list)
    debts: list[Debt] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.products or self.sales or self.debts)

    def record_count(self) -> int:
        return len(self.products) + len(self.sales) + len(self.debts)
