"""Daily statistics schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


class BranchStat(BaseModel):
    branch_name: str
    revenue: int
    settled_amount: int
    order_count: int


class DailyStatResponse(BaseModel):
    """Reconciled revenue figures for one local calendar day."""

    date: str
    total_revenue: int
    total_settled_amount: int
    total_order_count: int
    branches: Dict[str, BranchStat]
    last_updated: Optional[datetime] = None
    is_synced: bool = True

    model_config = {"from_attributes": True}


class BranchResponse(BaseModel):
    id: int
    name: str
    code: Optional[str] = None
    branch_type: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    active: bool

    model_config = {"from_attributes": True}
