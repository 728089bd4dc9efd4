"""Branch directory model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from florist_ledger.db.base import Base, TimestampMixin


class Branch(Base, TimestampMixin):
    """A shop in the chain (head office, franchise or direct branch).

    Only used to validate and display branch names; stock rows, orders and
    ledger entries reference branches by name.
    """

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    branch_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # head_office, franchise, direct
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
