"""
Formatting and Normalization Utilities

Text normalization for matching, Brazilian phone handling, and BRL money helpers.
Money is stored as integer cents everywhere.
"""

import re
import unicodedata
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

PHONE_PATTERN = re.compile(r"^\(?\d{2}\)?[\s-]?\d{4,5}[\s-]?\d{4}$")

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def normalize_text(value: Optional[str]) -> Optional[str]:
    """
    Normalize free text for equality comparisons.

    Lower-cases, strips accents and collapses whitespace:
    "  São   Paulo " -> "sao paulo". Blank input yields None.
    """
    if value is None:
        return None
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    collapsed = _WHITESPACE.sub(" ", stripped).strip().lower()
    return collapsed or None


def slugify(value: str) -> str:
    """Turn a tenant name into a subdomain candidate."""
    normalized = normalize_text(value) or ""
    return _NON_SLUG.sub("-", normalized).strip("-")


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone.strip()))


def normalize_phone(phone: str) -> str:
    """Keep digits only."""
    return re.sub(r"\D", "", phone)


def format_phone(phone: str) -> str:
    cleaned = normalize_phone(phone)
    if len(cleaned) == 11:
        return f"({cleaned[:2]}) {cleaned[2:7]}-{cleaned[7:]}"
    if len(cleaned) == 10:
        return f"({cleaned[:2]}) {cleaned[2:6]}-{cleaned[6:]}"
    return phone


def to_cents(reais: Union[int, float, Decimal, str]) -> int:
    """Convert a value in reais to integer cents, rounding half up."""
    amount = Decimal(str(reais)) * 100
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_currency(cents: int) -> str:
    """Format cents as BRL: 123456 -> "R$ 1.234,56"."""
    sign = "-" if cents < 0 else ""
    reais, centavos = divmod(abs(cents), 100)
    grouped = f"{reais:,}".replace(",", ".")
    return f"{sign}R$ {grouped},{centavos:02d}"


def reject_explicit_nulls(model, fields: tuple[str, ...]) -> None:
    """
    Partial updates treat ``null`` as "clear this field"; required fields cannot be cleared.

    Raises:
        ValueError: If one of ``fields`` was sent as null
    """
    cleared = sorted(f for f in fields if f in model.model_fields_set and getattr(model, f) is None)
    if cleared:
        raise ValueError(f"Cannot clear required field(s): {', '.join(cleared)}")
