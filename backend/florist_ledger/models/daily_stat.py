"""Derived daily revenue summary."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from florist_ledger.db.base import Base


class DailyStat(Base):
    """Per-date revenue, settlement and order-count aggregates.

    Owned by the revenue reconciliation job: the whole row is recomputed
    from orders and overwritten, never incremented.
    """

    __tablename__ = "daily_stats"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)  # YYYY-MM-DD, local calendar day
    total_revenue: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_settled_amount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_order_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # branch key -> {"branch_name", "revenue", "settled_amount", "order_count"}
    branches: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    last_updated: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_synced: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def figures(self) -> dict:
        """Aggregates without the recomputation timestamp."""
        return {
            "date": self.date,
            "total_revenue": self.total_revenue,
            "total_settled_amount": self.total_settled_amount,
            "total_order_count": self.total_order_count,
            "branches": self.branches,
        }

    def to_dict(self) -> dict:
        data = self.figures()
        data["last_updated"] = self.last_updated.isoformat() if self.last_updated else None
        data["is_synced"] = self.is_synced
        return data
