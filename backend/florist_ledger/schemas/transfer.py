"""Order transfer schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TransferRequest(BaseModel):
    process_branch_name: str = Field(..., min_length=1, max_length=100)
    order_branch_percent: int = Field(..., ge=0, le=100)
    process_branch_percent: int = Field(..., ge=0, le=100)
    notes: Optional[str] = None


class TransferAction(BaseModel):
    notes: Optional[str] = None


class TransferResponse(BaseModel):
    id: int
    order_id: int
    is_transferred: bool
    status: str
    process_branch_name: Optional[str] = None
    order_branch_percent: Optional[int] = None
    process_branch_percent: Optional[int] = None
    requested_by: Optional[str] = None
    transfer_date: Optional[datetime] = None
    status_changed_at: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}
