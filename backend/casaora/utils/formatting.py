"""Display helpers for notifications and emails."""

from __future__ import annotations

import json
from typing import Any


def format_cop(amount: int | None) -> str:
    """Format a peso amount Colombian style: ``$120.000 COP``."""
    value = int(amount or 0)
    grouped = f"{value:,}".replace(",", ".")
    return f"${grouped} COP"


def format_booking_address(address: Any) -> str:
    """
    Render a stored booking address for humans.

    Structured addresses prefer their ``formatted`` line; anything else
    falls back to its JSON form.
    """
    if not address:
        return "Not specified"
    if isinstance(address, str):
        return address
    if isinstance(address, dict):
        formatted = address.get("formatted")
        if isinstance(formatted, str) and formatted.strip():
            return formatted
    return json.dumps(address, ensure_ascii=False, sort_keys=True)
