from __future__ import annotations

import re
import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator, model_validator

WALK_IN_CUSTOMER = "Walk-in Customer"

_PAYMENT_METHOD_ALIASES = {"upi": "online", "qr": "online"}
_PHONE_RE = re.compile(r"^\+?[0-9][0-9 ()-]*$")


def _to_payment_method(v):
    if v is None:
        return v
    raw = str(v).strip().lower()
    return _PAYMENT_METHOD_ALIASES.get(raw, raw)


def _strip_str(v):
    if v is None:
        return ""
    return str(v).strip()


PaymentMethod = Annotated[Literal["cash", "online"], BeforeValidator(_to_payment_method)]
CleanStr = Annotated[str, BeforeValidator(_strip_str)]


def new_bill_id() -> str:
    # Millisecond clock keeps ids roughly sortable; the suffix separates two
    # checkouts landing in the same millisecond on one register.
    return f"INV-{int(time.time() * 1000)}-{secrets.token_hex(2)}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BillItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str = Field(min_length=1)
    item_name: CleanStr = ""
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    total_price: Decimal = Decimal("0")

    @model_validator(mode="before")
    @classmethod
    def _fill_total(cls, data):
        if isinstance(data, dict) and data.get("total_price") in (None, ""):
            data = dict(data)
            data["total_price"] = Decimal(str(data.get("unit_price") or 0)) * int(data.get("quantity") or 0)
        return data


class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: CleanStr = Field(default="", validate_default=True)
    phone: CleanStr
    email: CleanStr = ""
    address: CleanStr = ""

    @field_validator("name")
    @classmethod
    def _default_name(cls, v: str) -> str:
        return v or WALK_IN_CUSTOMER

    @field_validator("phone")
    @classmethod
    def _require_phone(cls, v: str) -> str:
        if not v:
            raise ValueError("customer phone is required")
        if len(v) > 32 or not _PHONE_RE.match(v):
            raise ValueError("customer phone is not a valid phone number")
        return v


class SaleTransaction(BaseModel):
    """A completed checkout. Immutable once created.

    ``bill_id`` is assigned on the register, so replaying the same record
    against the backend is recognised as a duplicate rather than a new sale.
    """

    model_config = ConfigDict(frozen=True)

    bill_id: CleanStr = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.:-]*$")
    items: tuple[BillItem, ...] = Field(min_length=1)
    customer: Customer
    subtotal: Decimal
    final_amount: Decimal
    payment_method: PaymentMethod
    timestamp: datetime = Field(default_factory=utcnow)
    notes: str = ""
    user_id: Optional[str] = None

    @classmethod
    def create(
        cls,
        items,
        customer: Customer,
        payment_method: str,
        bill_id: Optional[str] = None,
        notes: str = "",
        user_id: Optional[str] = None,
    ) -> "SaleTransaction":
        lines = tuple(i if isinstance(i, BillItem) else BillItem.model_validate(i) for i in items)
        subtotal = sum((ln.total_price for ln in lines), Decimal("0"))
        final_amount = subtotal
        return cls(
            bill_id=bill_id or new_bill_id(),
            items=lines,
            customer=customer,
            subtotal=subtotal,
            final_amount=final_amount,
            payment_method=payment_method,
            notes=notes or "",
            user_id=user_id or None,
        )

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "SaleTransaction":
        return cls.model_validate_json(raw)
