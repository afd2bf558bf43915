"""Quote-block wire format shared by supplier personas and the engine.

Suppliers are prompted to end every reply with a block like::

    ===QUOTE===
    FSH013: $12.60/unit
    LEAD_TIME: 45 days
    PAYMENT: 33/33/33
    TOTAL_VALUE: $1,234,500
    ===END_QUOTE===

The field grammar below is version 1 of that contract. Any change to it must
be mirrored in ``quote_block_instructions`` so personas keep producing
parseable replies.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

from models import ParsedQuote

QUOTE_FORMAT_VERSION = 1

QUOTE_START = "===QUOTE==="
QUOTE_END = "===END_QUOTE==="

DEFAULT_LEAD_TIME_DAYS = 30

_BLOCK_RE = re.compile(re.escape(QUOTE_START) + r"([\s\S]*?)" + re.escape(QUOTE_END))
_PRICE_RE = re.compile(r"([A-Z]{3}\d{3}):\s*\$([0-9.]+)")
_LEAD_RE = re.compile(r"LEAD_TIME:\s*(\d+)")
_PAYMENT_RE = re.compile(r"PAYMENT:\s*([^\n]+)")
_TOTAL_RE = re.compile(r"TOTAL_VALUE:\s*\$([0-9,]+)")

# Leading decimal accepted when an amount token has stray dots ("12.50.").
_DECIMAL_PREFIX_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def _to_amount(raw: str) -> Optional[float]:
    try:
        return float(raw)
    except ValueError:
        pass
    m = _DECIMAL_PREFIX_RE.match(raw)
    return float(m.group(0)) if m else None


def _to_days(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_LEAD_TIME_DAYS


def parse_quote(text: str | None) -> Optional[ParsedQuote]:
    """Extract the quote block from a supplier reply.

    Returns None when the reply has no block or the block carries no unit
    price. Missing or malformed secondary fields fall back to defaults:
    lead time 30 days, empty payment terms, total value 0. Never raises.
    """
    if not text:
        return None

    block = _BLOCK_RE.search(text)
    if block is None:
        return None
    raw = block.group(1)

    unit_prices: dict[str, float] = {}
    for code, amount in _PRICE_RE.findall(raw):
        value = _to_amount(amount)
        if value is not None:
            unit_prices[code] = value

    if not unit_prices:
        return None

    lead = _LEAD_RE.search(raw)
    payment = _PAYMENT_RE.search(raw)
    total = _TOTAL_RE.search(raw)

    total_value = 0.0
    if total:
        digits = total.group(1).replace(",", "")
        if digits:
            total_value = float(digits)

    return ParsedQuote(
        unit_prices=unit_prices,
        lead_time_days=_to_days(lead.group(1)) if lead else DEFAULT_LEAD_TIME_DAYS,
        payment_terms=payment.group(1).strip() if payment else "",
        total_value=total_value,
    )


def strip_quote_blocks(text: str) -> str:
    """Remove every quote block, leaving the supplier's prose."""
    return _BLOCK_RE.sub("", text).strip()


def quote_block_instructions(codes: Iterable[str]) -> str:
    lines = [QUOTE_START]
    lines.extend(f"{code}: $X.XX/unit" for code in codes)
    lines.extend([
        "LEAD_TIME: XX days",
        "PAYMENT: [your terms]",
        "TOTAL_VALUE: $X,XXX,XXX",
        QUOTE_END,
    ])
    return "\n".join(lines)
