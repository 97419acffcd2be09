from __future__ import annotations

import re

_NOT_NUMERIC = re.compile(r"[^\d.\-]")


def parse_money(value) -> float:
    """Amount from a number or a display string such as '৳1,250.50' or '$ 3,000'.

    Anything that is not a digit, a dot or a minus sign is dropped; unparseable
    input yields 0.0.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NOT_NUMERIC.sub("", str(value))
    if cleaned in ("", "-", ".", "-."):
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def format_money(amount, symbol: str = "৳") -> str:
    value = parse_money(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
