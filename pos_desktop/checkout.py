from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from pydantic import ValidationError

from .buffer import BufferWriteError, OfflineSaleBuffer
from .connectivity import ConnectivityProbe
from .logs import json_log
from .models import BillItem, Customer, SaleTransaction
from .remote import RemoteCommitError
from .sync import Committer


class CheckoutError(Exception):
    """The sale was not placed. The cart is left as it was."""


class InvalidSale(CheckoutError):
    """Checkout input was rejected before anything was stored or sent."""


class CartError(ValueError):
    pass


@dataclass
class Product:
    item_id: str
    item_name: str
    unit_price: Decimal
    quantity: int  # on hand
    is_available: bool = True


@dataclass
class CartLine:
    product: Product
    quantity: int

    @property
    def total(self) -> Decimal:
        return Decimal(self.product.unit_price) * self.quantity


class Cart:
    def __init__(self):
        self._lines: dict[str, CartLine] = {}

    def add(self, product: Product, quantity: int = 1) -> CartLine:
        if not product.is_available:
            raise CartError(f"{product.item_name} is currently not available for sale")
        line = self._lines.get(product.item_id)
        in_cart = line.quantity if line else 0
        if product.quantity - in_cart < quantity:
            raise CartError(f"no more units of {product.item_name} available")
        if line:
            line.quantity += quantity
        else:
            line = CartLine(product=product, quantity=quantity)
            self._lines[product.item_id] = line
        return line

    def set_quantity(self, item_id: str, quantity: int):
        line = self._lines.get(item_id)
        if line is None:
            raise CartError(f"{item_id} is not in the cart")
        if quantity <= 0:
            del self._lines[item_id]
            return
        if quantity > line.product.quantity:
            raise CartError(f"only {line.product.quantity} units available")
        line.quantity = quantity

    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def subtotal(self) -> Decimal:
        return sum((ln.total for ln in self._lines.values()), Decimal("0"))

    def is_empty(self) -> bool:
        return not self._lines

    def clear(self):
        self._lines.clear()

    def bill_items(self) -> list[BillItem]:
        return [
            BillItem(
                item_id=ln.product.item_id,
                item_name=ln.product.item_name,
                quantity=ln.quantity,
                unit_price=Decimal(ln.product.unit_price),
                total_price=ln.total,
            )
            for ln in self._lines.values()
        ]


@dataclass
class CheckoutResult:
    sale: SaleTransaction
    status: str  # "queued" | "inserted" | "duplicate"

    @property
    def queued(self) -> bool:
        return self.status == "queued"


class CheckoutService:
    """Places a sale directly when online, buffers it locally when offline."""

    def __init__(
        self,
        buffer: OfflineSaleBuffer,
        committer: Committer,
        probe: ConnectivityProbe,
        on_queued: Optional[Callable[[SaleTransaction], None]] = None,
    ):
        self.buffer = buffer
        self.committer = committer
        self.probe = probe
        self.on_queued = on_queued

    def build_sale(
        self,
        cart: Cart,
        customer: dict,
        payment_method: str,
        notes: str = "",
        bill_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> SaleTransaction:
        if cart.is_empty():
            raise InvalidSale("empty cart")
        if not isinstance(customer, dict):
            raise InvalidSale("customer must be an object")
        if not str(customer.get("phone") or "").strip():
            raise InvalidSale("customer phone required")
        try:
            return SaleTransaction.create(
                items=cart.bill_items(),
                customer=Customer.model_validate(customer),
                payment_method=payment_method,
                bill_id=bill_id,
                notes=notes,
                user_id=user_id,
            )
        except ValidationError as ex:
            raise InvalidSale(f"invalid sale: {ex.errors()[0].get('msg')}") from ex

    def complete_sale(
        self,
        cart: Cart,
        customer: dict,
        payment_method: str,
        notes: str = "",
        bill_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CheckoutResult:
        sale = self.build_sale(cart, customer, payment_method, notes=notes, bill_id=bill_id, user_id=user_id)

        if not self.probe.is_online():
            try:
                self.buffer.save(sale)
            except BufferWriteError as ex:
                raise CheckoutError(str(ex)) from ex
            cart.clear()
            if self.on_queued:
                self.on_queued(sale)
            json_log("info", "checkout.queued_offline", bill_id=sale.bill_id, final_amount=sale.final_amount)
            return CheckoutResult(sale=sale, status="queued")

        try:
            res = self.committer.commit(sale)
        except RemoteCommitError as ex:
            json_log("error", "checkout.commit_failed", bill_id=sale.bill_id, error=str(ex))
            raise CheckoutError(f"Transaction failed: {ex}") from ex
        cart.clear()
        status = getattr(res, "status", None) or "inserted"
        json_log("info", "checkout.committed", bill_id=sale.bill_id, status=status, final_amount=sale.final_amount)
        return CheckoutResult(sale=sale, status=status)
