"""Stock schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class StockRowResponse(BaseModel):
    """Stock row response schema."""

    id: int
    item_id: str
    branch_name: str
    item_type: str
    name: str
    quantity: int
    unit_price: Optional[int] = None
    supplier: Optional[str] = None
    main_category: Optional[str] = None
    mid_category: Optional[str] = None
    version: int
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StockItemCreate(BaseModel):
    """Catalog add: register an item at a branch with zero stock."""

    item_id: str = Field(..., min_length=1, max_length=50)
    branch_name: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    item_type: Literal["product", "material"] = "product"
    unit_price: Optional[int] = Field(None, ge=0)
    supplier: Optional[str] = None
    main_category: Optional[str] = None
    mid_category: Optional[str] = None


class StockSetRequest(BaseModel):
    """Manual stock correction to an absolute quantity."""

    item_id: str = Field(..., min_length=1)
    branch_name: str = Field(..., min_length=1)
    new_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


class StockMovementLine(BaseModel):
    item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    name: Optional[str] = None
    item_type: Literal["product", "material"] = "material"
    unit_price: Optional[int] = Field(None, ge=0)


class StockMovementRequest(BaseModel):
    """Bulk stock-in / stock-out for one branch."""

    type: Literal["in", "out"]
    branch_name: str = Field(..., min_length=1)
    supplier: Optional[str] = None
    items: List[StockMovementLine] = Field(..., min_length=1)


class StockHistoryResponse(BaseModel):
    """Ledger entry as shown on the history screen."""

    id: int
    ts: datetime
    change_type: str
    item_type: str
    item_id: str
    item_name: str
    quantity: int
    quantity_delta: int
    from_stock: int
    to_stock: int
    resulting_stock: int
    branch: str
    operator: str
    unit_price: Optional[int] = None
    supplier: Optional[str] = None
    total_amount: Optional[int] = None
    ref_type: Optional[str] = None
    ref_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}
