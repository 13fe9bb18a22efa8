from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def dec(x) -> Decimal:
    """Decimal from anything numeric; None/"" → 0."""
    if x is None or x == "":
        return Decimal("0")
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def round2(x) -> Decimal:
    return dec(x).quantize(CENT, rounding=ROUND_HALF_UP)


def as_float(x):
    try:
        return float(x) if x is not None else None
    except Exception:
        return None
