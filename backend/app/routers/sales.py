from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import json

import psycopg

from ..config import settings
from ..db import get_conn
from ..logs import json_log
from ..validation import BillId, CustomerPhone, PaymentMethod

router = APIRouter(prefix="/sales", tags=["sales"])


class SaleLineIn(BaseModel):
    item_id: str = Field(min_length=1, max_length=64)
    item_name: str = ""
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(ge=0)
    total_price: Optional[Decimal] = None


class CustomerIn(BaseModel):
    name: str = ""
    phone: CustomerPhone
    email: str = ""
    address: str = ""


class SaleCommitIn(BaseModel):
    bill_id: BillId
    items: List[SaleLineIn] = Field(min_length=1)
    customer: CustomerIn
    subtotal: Decimal = Field(ge=0)
    final_amount: Decimal = Field(ge=0)
    payment_method: PaymentMethod
    timestamp: Optional[datetime] = None
    notes: str = ""
    user_id: Optional[str] = None


def _line_total(line: SaleLineIn) -> Decimal:
    if line.total_price is not None:
        return line.total_price
    return line.unit_price * line.quantity


def _insert_sale(cur, data: SaleCommitIn) -> Optional[str]:
    """Insert the sale row. Returns the new id, or None when bill_id already exists."""
    items = [
        {
            "item_id": ln.item_id,
            "item_name": ln.item_name,
            "quantity": ln.quantity,
            "unit_price": ln.unit_price,
            "total_price": _line_total(ln),
        }
        for ln in data.items
    ]
    cur.execute(
        """
        INSERT INTO sales
          (id, bill_id, user_id, customer_name, customer_phone, customer_email, customer_address,
           items, subtotal, total_amount, payment_method, notes, bill_data, client_created_at, payment_status)
        VALUES
          (gen_random_uuid(), %s, %s, %s, %s, %s, %s,
           %s::jsonb, %s, %s, %s, %s, %s::jsonb, %s, 'completed')
        ON CONFLICT (bill_id) DO NOTHING
        RETURNING id
        """,
        (
            data.bill_id,
            data.user_id,
            data.customer.name or "Walk-in Customer",
            data.customer.phone,
            data.customer.email or None,
            data.customer.address or None,
            json.dumps(items, default=str),
            data.subtotal,
            data.final_amount,
            data.payment_method,
            data.notes or None,
            data.model_dump_json(),
            data.timestamp,
        ),
    )
    row = cur.fetchone()
    return str(row["id"]) if row else None


def _decrement_stock(conn, lines: List[SaleLineIn]) -> list:
    """Decrement stock line by line. Failures are reported, never raised.

    Each line runs in its own savepoint so one bad line does not poison the
    sale insert or the remaining lines.
    """
    warnings = []
    for ln in lines:
        try:
            with conn.transaction():
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT decrement_stock(%s, %s) AS updated",
                        (ln.item_id, ln.quantity),
                    )
                    row = cur.fetchone()
            if not row or not row.get("updated"):
                warnings.append({"item_id": ln.item_id, "quantity": ln.quantity, "error": "insufficient stock or unknown item"})
        except psycopg.Error as ex:
            warnings.append({"item_id": ln.item_id, "quantity": ln.quantity, "error": str(ex)[:500]})
    return warnings


@router.post("/commit")
def commit_sale(data: SaleCommitIn):
    """
    Record a register sale and decrement stock.

    Idempotent by bill_id: a replay of an already-recorded bill returns
    status "duplicate" and leaves stock alone. Stock decrement failures do
    not undo the sale; they come back as stock_warnings.
    """
    with get_conn() as conn:
        with conn.cursor() as cur:
            sale_id = _insert_sale(cur, data)
            if sale_id is None:
                cur.execute("SELECT id FROM sales WHERE bill_id = %s", (data.bill_id,))
                existing = cur.fetchone()
                json_log("info", "sales.commit.duplicate", bill_id=data.bill_id)
                return {
                    "bill_id": data.bill_id,
                    "status": "duplicate",
                    "sale_id": str(existing["id"]) if existing else None,
                    "stock_warnings": [],
                }

        warnings = _decrement_stock(conn, data.items)

    for w in warnings:
        json_log("warning", "sales.commit.stock_decrement_failed", bill_id=data.bill_id, **w)
    json_log(
        "info",
        "sales.commit.inserted",
        bill_id=data.bill_id,
        sale_id=sale_id,
        total_amount=data.final_amount,
        stock_warnings=len(warnings),
    )
    return {"bill_id": data.bill_id, "status": "inserted", "sale_id": sale_id, "stock_warnings": warnings}


@router.get("/customers/{phone}")
def customer_history(phone: str, limit: int = Query(20, ge=1)):
    phone = (phone or "").strip()
    if not phone:
        raise HTTPException(status_code=400, detail="phone is required")
    limit = min(limit, settings.history_limit_max)
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, bill_id, created_at, customer_name, customer_phone,
                       total_amount, payment_method, items
                FROM sales
                WHERE customer_phone = %s
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (phone, limit),
            )
            rows = cur.fetchall()
    total = sum((Decimal(str(r.get("total_amount") or 0)) for r in rows), Decimal("0"))
    return {"phone": phone, "sales": rows, "count": len(rows), "total_amount": total}


@router.get("/{bill_id}")
def get_sale(bill_id: str):
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, bill_id, user_id, created_at, customer_name, customer_phone, customer_email,
                       items, subtotal, total_amount, payment_method, payment_status, notes, client_created_at
                FROM sales
                WHERE bill_id = %s
                """,
                (bill_id,),
            )
            row = cur.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="sale not found")
    return {"sale": row}
