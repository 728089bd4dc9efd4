"""Customer order models: Order, OrderLine and OrderTransfer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from florist_ledger.core.timeutils import as_utc, utcnow
from florist_ledger.db.base import Base, TimestampMixin
from florist_ledger.models.validators import non_negative, percentage, required_text


class OrderStatus(str, Enum):
    """Fulfilment status of an order."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    """Payment status of an order."""

    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"


SETTLED_PAYMENT_STATUSES = {PaymentStatus.PAID.value, PaymentStatus.COMPLETED.value}


class PaymentMethod(str, Enum):
    CARD = "card"
    CASH = "cash"
    TRANSFER = "transfer"
    MAINPAY = "mainpay"
    SHOPPING_MALL = "shopping_mall"
    EPAY = "epay"


class TransferStatus(str, Enum):
    """Status of an order handed over to another branch for fulfilment."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    CANCELED = "canceled"


# Only transfers the fulfilling branch has taken on move revenue
REVENUE_SPLIT_STATUSES = {TransferStatus.ACCEPTED.value, TransferStatus.COMPLETED.value}


class Order(Base, TimestampMixin):
    """A customer order taken at an originating branch."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
    branch_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PROCESSING.value, nullable=False, index=True
    )

    # Orderer
    orderer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    orderer_contact: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    orderer_company: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # store, phone, naver, kakao, etc
    receipt_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # pickup, delivery

    # Payment
    payment_method: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, nullable=False
    )

    # Summary (whole currency units)
    subtotal: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    discount: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delivery_fee: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    request: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    lines: Mapped[list["OrderLine"]] = relationship(
        "OrderLine", back_populates="order", cascade="all, delete-orphan", order_by="OrderLine.id"
    )
    transfer: Mapped[Optional["OrderTransfer"]] = relationship(
        "OrderTransfer", back_populates="order", uselist=False, cascade="all, delete-orphan"
    )

    @validates("subtotal", "discount", "delivery_fee", "total")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("orderer_name", "branch_name")
    def _validate_required(self, key, value):
        return required_text(key, value)

    @validates("order_date")
    def _normalize_order_date(self, key, value):
        # Stored as UTC; SQLite keeps only the wall-clock part
        return as_utc(value)

    @property
    def is_settled(self) -> bool:
        return self.payment_status in SETTLED_PAYMENT_STATUSES


class OrderLine(Base):
    """A single item line of an order."""

    __tablename__ = "order_lines"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="lines")


class OrderTransfer(Base):
    """Hand-over of an order to a fulfilling branch, with its revenue split."""

    __tablename__ = "order_transfers"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    is_transferred: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TransferStatus.PENDING.value, nullable=False
    )
    process_branch_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # Revenue split in percent; both unset means the default 100/0
    order_branch_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    process_branch_percent: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    requested_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    transfer_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="transfer")

    @validates("order_branch_percent", "process_branch_percent")
    def _validate_percent(self, key, value):
        return percentage(key, value)

    @property
    def splits_revenue(self) -> bool:
        return bool(self.is_transferred) and self.status in REVENUE_SPLIT_STATUSES
