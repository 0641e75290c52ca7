from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BeforeValidator, StringConstraints


def _to_lower_str(v):
    if v is None:
        return v
    return str(v).strip().lower()


def _strip_str(v):
    if v is None:
        return ""
    return str(v).strip()


_PAYMENT_METHOD_ALIASES = {"upi": "online", "qr": "online"}


def _to_payment_method(v):
    v = _to_lower_str(v)
    return _PAYMENT_METHOD_ALIASES.get(v, v)


# Registers take cash at the counter or UPI/QR transfers ("online").
PaymentMethod = Annotated[Literal["cash", "online"], BeforeValidator(_to_payment_method)]

# Bill ids are generated on the register (`INV-<ms>-<hex>`); keep them to a
# safe identifier alphabet since they are the idempotency key.
BillId = Annotated[
    str,
    BeforeValidator(_strip_str),
    StringConstraints(min_length=1, max_length=64, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.:-]*$"),
]

# Phone is the customer history grouping key.
CustomerPhone = Annotated[
    str,
    BeforeValidator(_strip_str),
    StringConstraints(min_length=1, max_length=32, pattern=r"^\+?[0-9][0-9 ()-]*$"),
]
