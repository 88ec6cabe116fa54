import re
from decimal import Decimal, InvalidOperation

AMOUNT_RE = re.compile(r"(?P<charge>-)?(?P<amount>\d+)\.?(?P<decimal>\d*)")

MAX_FRACTION_DIGITS = 2

# stored amounts are SQLite INTEGER (signed 64-bit)
MIN_CENTS = -(2**63)
MAX_CENTS = 2**63 - 1


def _check_range(cents: int) -> int:
    if not MIN_CENTS <= cents <= MAX_CENTS:
        raise ValueError("amount out of range")
    return cents


def format_amount(cents: int) -> str:
    """Render integer cents as a fixed-point decimal string, e.g. -5000 -> "-50.00"."""
    sign = "-" if cents < 0 else ""
    units, remainder = divmod(abs(cents), 100)
    return f"{sign}{units}.{remainder:02d}"


def parse_amount(value: str) -> int:
    """
    Parse a statement amount into signed cents.

    Commas and whitespace are dropped and the integer and fractional digits
    are joined as-is, so "-1,234.56" becomes -123456.
    """
    cleaned = "".join(value.replace(",", "").split())
    if not cleaned:
        raise ValueError("amount is empty")

    match = AMOUNT_RE.search(cleaned)
    if match is None:
        raise ValueError("amount does not match expected pattern")

    fraction = match.group("decimal")
    if len(fraction) > MAX_FRACTION_DIGITS:
        raise ValueError(
            f"amount has more than {MAX_FRACTION_DIGITS} fractional digits"
        )

    cents = int(match.group("amount") + fraction)
    if match.group("charge"):
        cents = -cents
    return _check_range(cents)


def dollars_to_cents(value: str) -> int:
    """Convert a decimal string such as "10.50" to cents, truncating toward zero."""
    try:
        amount = Decimal(value.strip())
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount format: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"invalid amount format: {value!r}")
    # compared unscaled: 1e999999 * 100 overflows the decimal context
    if not Decimal(MIN_CENTS) / 100 <= amount <= Decimal(MAX_CENTS) / 100:
        raise ValueError("amount out of range")
    return int(amount * 100)


def per_day(total: int, days: int) -> int:
    days = max(days, 1)
    quotient = abs(total) // days
    return quotient if total >= 0 else -quotient
