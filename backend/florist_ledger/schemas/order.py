"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from florist_ledger.services.order_placement_service import (
    OrderDraft,
    OrderLineDraft,
    TransferDraft,
)


class OrderLineCreate(BaseModel):
    """A single order line as entered on the order form."""

    item_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int
    price: int = Field(0, ge=0)


class OrderTransferCreate(BaseModel):
    """Transfer attached to an order at placement time."""

    process_branch_name: Optional[str] = None
    status: Literal["pending", "accepted", "completed"] = "pending"
    order_branch_percent: Optional[int] = Field(None, ge=0, le=100)
    process_branch_percent: Optional[int] = Field(None, ge=0, le=100)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_split(self):
        if (self.order_branch_percent is None) != (self.process_branch_percent is None):
            raise ValueError("order_branch_percent and process_branch_percent go together")
        if self.order_branch_percent is not None and self.order_branch_percent + self.process_branch_percent != 100:
            raise ValueError("split percentages must add up to 100")
        return self


class OrderCreate(BaseModel):
    """Order placement request."""

    branch_name: str = Field(..., min_length=1, max_length=100)
    orderer_name: str = Field(..., min_length=1, max_length=200)
    orderer_contact: Optional[str] = None
    orderer_company: Optional[str] = None
    is_anonymous: bool = False
    order_date: Optional[datetime] = None
    order_type: Optional[str] = None
    receipt_type: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Literal["pending", "paid", "completed"] = "pending"
    discount: int = Field(0, ge=0)
    delivery_fee: int = Field(0, ge=0)
    total: Optional[int] = Field(None, ge=0)
    request: Optional[str] = None
    lines: List[OrderLineCreate] = Field(..., min_length=1)
    transfer: Optional[OrderTransferCreate] = None

    # Per-request overrides of the configured failure policies
    compensate_on_failure: Optional[bool] = None
    missing_item_policy: Optional[Literal["skip", "fail"]] = None

    def to_draft(self) -> OrderDraft:
        transfer = None
        if self.transfer is not None:
            transfer = TransferDraft(**self.transfer.model_dump())
        return OrderDraft(
            branch_name=self.branch_name,
            orderer_name=self.orderer_name,
            lines=[OrderLineDraft(**line.model_dump()) for line in self.lines],
            order_date=self.order_date,
            orderer_contact=self.orderer_contact,
            orderer_company=self.orderer_company,
            is_anonymous=self.is_anonymous,
            order_type=self.order_type,
            receipt_type=self.receipt_type,
            payment_method=self.payment_method,
            payment_status=self.payment_status,
            discount=self.discount,
            delivery_fee=self.delivery_fee,
            total=self.total,
            request=self.request,
            transfer=transfer,
        )
