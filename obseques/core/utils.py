from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_GROUP_SEP = "\u202f"
_CURRENCY_SEP = "\u00a0"


def money(value: Decimal | float | int | None) -> str:
    amount = Decimal(str(value or 0)).quantize(Decimal("0.01"))
    text = f"{amount:,.2f}".replace(",", _GROUP_SEP).replace(".", ",")
    return f"{text}{_CURRENCY_SEP}€"


def new_id(length: int = 7) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def format_datetime(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y %H:%M")


def validate_email(value: str | None) -> str:
    email = (value or "").strip()
    if not email:
        return ""
    if "@" not in email or email.startswith("@") or email.endswith("@") or " " in email:
        raise ValueError("Email invalide")
    return email
