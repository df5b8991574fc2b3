"""Fixed-point conversion between display amounts and ledger units.

Payment-coin amounts (balances, allowances, prices, royalty distributions,
transfers) cross the ledger boundary as integers scaled by 100, i.e. two
implied decimal digits. Royalty token quantities are whole tokens and are
not scaled.

Conversions go through :class:`decimal.Decimal` so that ``19.99`` never
turns into ``1998`` through binary floating point drift::

    >>> to_ledger_units("19.99")
    1999
    >>> to_display(1999)
    Decimal('19.99')
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Number of implied decimal digits on the payment ledger.
DECIMALS = 2
SCALE = 10**DECIMALS

_QUANTUM = Decimal(1).scaleb(-DECIMALS)


def _as_decimal(amount: Decimal | str | int | float) -> Decimal:
    """Coerce user input into a finite Decimal."""
    if isinstance(amount, bool):
        raise ValueError("amount must be numeric, not bool")
    if isinstance(amount, float):
        # str() gives the shortest repr, which is what the user typed
        amount = str(amount)
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    return value


def to_ledger_units(amount: Decimal | str | int | float) -> int:
    """
    Convert a display amount into integer ledger units.

    The amount is quantized to two decimals (half-up) before scaling.

    Args:
        amount: Human-readable amount, e.g. ``"12.5"`` or ``Decimal("3.01")``.

    Returns:
        Integer ledger units, e.g. ``1250``.

    Raises:
        ValueError: If the amount cannot be parsed, is not finite or is too
            large to represent in ledger units.
    """
    value = _as_decimal(amount)
    try:
        # Beyond the context precision quantize() signals InvalidOperation
        return int(value.quantize(_QUANTUM, rounding=ROUND_HALF_UP).scaleb(DECIMALS))
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {amount!r}") from e


def to_display(units: int) -> Decimal:
    """Convert integer ledger units into a two-decimal display amount."""
    return Decimal(int(units)).scaleb(-DECIMALS).quantize(_QUANTUM)


def format_amount(value: Decimal | int) -> str:
    """Render a display amount with exactly two decimals (``"12.50"``)."""
    return f"{Decimal(value).quantize(_QUANTUM, rounding=ROUND_HALF_UP):f}"
