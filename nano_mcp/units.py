"""
Exact raw <-> display unit conversion.

One display unit (XNO) is 10**30 raw. All math is done on Python integers
over decimal strings; floats are rejected because raw amounts exceed 2**53.
"""

from __future__ import annotations

import re
from typing import Union

RAW_EXPONENT = 30
RAW_PER_UNIT = 10 ** RAW_EXPONENT

_RAW_REGEX = re.compile(r"^\d+$")
_DISPLAY_REGEX = re.compile(r"^(\d*)(?:\.(\d*))?$")

Amount = Union[str, int]


class AmountError(ValueError):
    """Raised for malformed, negative or over-precise amounts."""


def parse_raw(value: Amount) -> int:
    """Parse a raw amount given as a non-negative integer or decimal digit string."""
    if isinstance(value, bool):
        raise AmountError(f"Invalid raw amount: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise AmountError(f"Raw amount cannot be negative: {value}")
        return value
    if isinstance(value, str) and _RAW_REGEX.fullmatch(value.strip()):
        return int(value.strip())
    raise AmountError(f"Invalid raw amount: {value!r}. Expected a whole number of raw as a string.")


def raw_to_display(raw: Amount) -> str:
    """
    Convert raw to a display-unit decimal string.

    Trailing fractional zeros are dropped, so ``"10**30"`` raw becomes ``"1"``
    and ``"1230000000000000000000000000000"`` becomes ``"1.23"``.
    """
    whole, fraction = divmod(parse_raw(raw), RAW_PER_UNIT)
    if not fraction:
        return str(whole)
    digits = str(fraction).rjust(RAW_EXPONENT, "0").rstrip("0")
    return f"{whole}.{digits}"


def display_to_raw(amount: Amount) -> int:
    """
    Convert a display-unit amount to raw.

    Accepts integers and plain decimal strings (``"1"``, ``"1.23"``, ``".5"``).
    Digits finer than one raw are rejected unless they are all zero.
    """
    if isinstance(amount, bool):
        raise AmountError(f"Invalid display amount: {amount!r}")
    if isinstance(amount, int):
        if amount < 0:
            raise AmountError(f"Display amount cannot be negative: {amount}")
        return amount * RAW_PER_UNIT
    if not isinstance(amount, str):
        raise AmountError(f"Invalid display amount: {amount!r}. Pass it as a decimal string.")

    text = amount.strip()
    match = _DISPLAY_REGEX.fullmatch(text)
    if not text or match is None or text == ".":
        raise AmountError(f"Invalid display amount: {amount!r}")
    whole, fraction = match.group(1) or "0", match.group(2) or ""
    if len(fraction) > RAW_EXPONENT:
        if fraction[RAW_EXPONENT:].strip("0"):
            raise AmountError(
                f"Display amount {amount!r} has more than {RAW_EXPONENT} decimal places."
            )
        fraction = fraction[:RAW_EXPONENT]
    return int(whole) * RAW_PER_UNIT + int(fraction.ljust(RAW_EXPONENT, "0"))
