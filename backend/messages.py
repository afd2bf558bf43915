from __future__ import annotations

import re
from typing import Mapping, Optional, Sequence

from models import Product, Rfq, RfqLine
from quotes import parse_quote

SIGNATURE = "Best regards,\nBrand Sourcing Team"


def format_usd(value: float) -> str:
    return f"${value:,.0f}"


# ---------------------------------------------------------------------------
# RFQ
# ---------------------------------------------------------------------------

def resolve_rfq(
    quantities: Mapping[str, int],
    products: Sequence[Product],
    note: Optional[str] = None,
) -> Rfq:
    """Resolve requested quantities against the catalog.

    Codes missing from the catalog are ignored; catalog products missing from
    ``quantities`` use their default quantity.
    """
    lines = [
        RfqLine(
            code=p.code,
            name=p.name,
            quantity=quantities.get(p.code, p.defaultQuantity),
            targetFob=p.targetFob,
        )
        for p in products
    ]
    estimated = sum(line.targetFob * line.quantity for line in lines)
    return Rfq(products=lines, note=note or "", estimated_value=estimated)


def build_bom(products: Sequence[Product]) -> str:
    blocks = []
    for p in products:
        materials = "\n".join(
            f"      · {c.name}" + (f" ({c.composition})" if c.composition else "")
            for c in p.materials
        )
        trims = "\n".join(f"      · {c.name}" for c in p.trims)
        blocks.append(
            f"  {p.name} ({p.code}) — Target FOB ${p.targetFob:.2f}/unit\n"
            f"    Materials:\n{materials}\n"
            f"    Components/Trims:\n{trims}"
        )
    return "\n\n".join(blocks)


def build_rfq(
    rfq: Rfq,
    products: Sequence[Product],
    supplier_name: str,
    include_bom: bool = True,
) -> str:
    qty_lines = "\n".join(
        f"  • {line.name} ({line.code}): {line.quantity:,} units "
        f"@ target ${line.targetFob:.2f}"
        for line in rfq.products
    )
    note_section = f"\nSourcing note: {rfq.note}\n" if rfq.note else ""
    bom_section = (
        f"\nBILL OF MATERIALS (per SKU):\n{build_bom(products)}\n" if include_bom else ""
    )
    substitution_hint = (
        " — reference the exact component names above" if include_bom else ""
    )

    return (
        f"Dear {supplier_name} team,\n\n"
        "We are requesting a formal quotation for the following footwear products:\n\n"
        f"QUANTITIES REQUIRED:\n{qty_lines}\n\n"
        f"Total estimated value at target FOB: {format_usd(rfq.estimated_value)}\n"
        f"{note_section}"
        f"{bom_section}\n"
        "Please provide:\n"
        "1. Unit pricing per SKU\n"
        "2. Total order value\n"
        "3. Lead time (calendar days from PO confirmation to ex-factory)\n"
        "4. Payment terms\n"
        f"5. Any material substitution proposals{substitution_hint}\n\n"
        "We are evaluating multiple suppliers simultaneously.\n\n"
        f"{SIGNATURE}"
    )


# ---------------------------------------------------------------------------
# Round-2 counter
# ---------------------------------------------------------------------------

def supplier_section(memo: str, supplier_name: str) -> str:
    """Return the memo section headed ``=== <supplier_name> ===``, or ''."""
    heading = f"=== {supplier_name} ==="
    match = re.search(re.escape(heading) + r"[\s\S]*?(?==== |$)", memo)
    if match is None:
        return ""
    return match.group(0).replace(heading, "", 1).strip()


def build_counter(
    supplier_name: str,
    round1_reply: str,
    reflection: Optional[str] = None,
) -> str:
    """Render the round-2 counter.

    With a reflection memo this is the differentiated counter; without one it
    falls back to the fixed template of the simple protocol.
    """
    if reflection is None:
        return _build_simple_counter(supplier_name, round1_reply)

    insight = supplier_section(reflection, supplier_name)
    insight_section = f"Based on our analysis:\n{insight}\n\n" if insight else ""

    return (
        f"Dear {supplier_name} team,\n\n"
        "Thank you for your initial proposal. We have reviewed it alongside our "
        "other supplier evaluations.\n\n"
        f"{insight_section}"
        "We need you to address the following for your final offer:\n\n"
        "1. **Pricing** — Can you sharpen your unit costs? Even a 3–5% improvement "
        "would be decisive.\n"
        "2. **Payment terms** — Any flexibility here to ease our cash flow?\n"
        "3. **Lead time** — Please reconfirm your committed timeline.\n\n"
        "This is your best and final offer opportunity. We are making our "
        "selection decision shortly.\n\n"
        f"{SIGNATURE}"
    )


def _build_simple_counter(supplier_name: str, round1_reply: str) -> str:
    quote = parse_quote(round1_reply)
    recap = ""
    if quote is not None and quote.total_value:
        recap = (
            f"You quoted a total of {format_usd(quote.total_value)} with a "
            f"{quote.lead_time_days}-day lead time. "
        )

    return (
        f"Dear {supplier_name} team,\n\n"
        f"Thank you for your proposal. {recap}"
        "We have received competitive offers from other suppliers and need your "
        "best and final terms:\n\n"
        "1. **Pricing** — Please sharpen your unit costs.\n"
        "2. **Lead time** — Please reconfirm your committed timeline.\n"
        "3. **Payment terms** — Any flexibility here to ease our cash flow?\n\n"
        f"{SIGNATURE}"
    )
