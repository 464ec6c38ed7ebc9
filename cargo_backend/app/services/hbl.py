"""
Deterministic order/item tracking codes.

Contention-free alternative to the counter-based generator: the code is
derived from the order id and the item's position in the order, so no shared
row is touched. Codes are only meaningful within one order and an order can
carry at most 99 items.

Layout (Crockford base32 for the order part):
    V1 (15 chars): PROVIDER(3) + YYMM(4) + ORDER(6) + ITEM(2)          order_id < 32**6
    V2 (16 chars): PROVIDER(3) + "1" + YYMM(4) + ORDER(6) + ITEM(2)    order_id - 32**6 encoded
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from cargo_backend.app.core.exceptions import ValidationFailureError

CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
CROCKFORD_INDEX = {char: value for value, char in enumerate(CROCKFORD_ALPHABET)}

ORDER_WIDTH = 6
V1_CAPACITY = 32 ** ORDER_WIDTH
V2_MARKER = "1"
MAX_ITEMS_PER_ORDER = 99


@dataclass(frozen=True)
class ParsedHbl:
    provider: str
    year: int
    month: int
    order_id: int
    item_no: int
    version: int


def encode_base32(value: int, width: int) -> str:
    if value < 0 or value >= 32 ** width:
        raise ValidationFailureError("Value out of range for base32 width", details={"value": value, "width": width})
    chars = []
    for _ in range(width):
        value, remainder = divmod(value, 32)
        chars.append(CROCKFORD_ALPHABET[remainder])
    return "".join(reversed(chars))


def decode_base32(text: str) -> int:
    value = 0
    for char in text.upper():
        if char not in CROCKFORD_INDEX:
            raise ValidationFailureError("Invalid base32 character", details={"char": char})
        value = value * 32 + CROCKFORD_INDEX[char]
    return value


def _check_provider(provider: str) -> str:
    if len(provider) != 3 or not provider.isalnum() or not provider.isascii():
        raise ValidationFailureError(
            "Provider code must be exactly 3 alphanumeric characters", details={"provider": provider}
        )
    return provider.upper()


def build_hbl(provider: str, order_id: int, item_no: int, issued_at: Optional[datetime] = None) -> str:
    """
    Build the code for item `item_no` (1-based) of an order.

    Raises:
        ValidationFailureError: bad provider, item outside 1..99, order id out of range
    """
    provider = _check_provider(provider)
    if not 1 <= item_no <= MAX_ITEMS_PER_ORDER:
        raise ValidationFailureError(
            f"Item number must be between 1 and {MAX_ITEMS_PER_ORDER}",
            details={"order_id": order_id, "item_no": item_no},
        )
    if order_id < 0 or order_id >= 2 * V1_CAPACITY:
        raise ValidationFailureError("Order id out of range for tracking code", details={"order_id": order_id})

    issued_at = issued_at or datetime.now(timezone.utc)
    yymm = f"{issued_at:%y%m}"
    item = f"{item_no:02d}"

    if order_id < V1_CAPACITY:
        return f"{provider}{yymm}{encode_base32(order_id, ORDER_WIDTH)}{item}"
    return f"{provider}{V2_MARKER}{yymm}{encode_base32(order_id - V1_CAPACITY, ORDER_WIDTH)}{item}"


def parse_hbl(code: str) -> ParsedHbl:
    """
    Split a deterministic code back into its parts.

    Raises:
        ValidationFailureError: malformed code
    """
    code = (code or "").strip().upper()
    if len(code) == 15:
        version, body, offset = 1, code[3:], 0
    elif len(code) == 16 and code[3] == V2_MARKER:
        version, body, offset = 2, code[4:], V1_CAPACITY
    else:
        raise ValidationFailureError("Malformed tracking code", details={"code": code})

    provider = _check_provider(code[:3])
    yymm, order_part, item_part = body[:4], body[4:10], body[10:12]
    if not yymm.isdigit() or not item_part.isdigit():
        raise ValidationFailureError("Malformed tracking code", details={"code": code})

    month = int(yymm[2:])
    item_no = int(item_part)
    if not 1 <= month <= 12 or not 1 <= item_no <= MAX_ITEMS_PER_ORDER:
        raise ValidationFailureError("Malformed tracking code", details={"code": code})

    return ParsedHbl(
        provider=provider,
        year=2000 + int(yymm[:2]),
        month=month,
        order_id=decode_base32(order_part) + offset,
        item_no=item_no,
        version=version,
    )


def is_valid_hbl(code: str) -> bool:
    try:
        parse_hbl(code)
    except ValidationFailureError:
        return False
    return True
