"""Unit conversion tools. Pure functions; no node access."""

from __future__ import annotations

from typing import Union

from nano_mcp.units import display_to_raw, raw_to_display


def convert_to_display_unit(raw_amount: Union[str, int]) -> str:
    """Convert a raw amount to display units (XNO), e.g. ``10**30`` -> ``"1"``."""
    return raw_to_display(raw_amount)


def convert_from_display_unit(display_amount: Union[str, int]) -> str:
    """Convert display units (XNO) to raw, returned as a decimal string."""
    return str(display_to_raw(display_amount))
