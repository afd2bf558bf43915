from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional, Protocol, Sequence, Union

from openai import AsyncOpenAI

from config import MODEL_NAME, OPENAI_API_KEY, OPENAI_BASE_URL, RESPONDER_TIMEOUT_SECONDS
from messages import format_usd
from models import (
    NegotiationMessage,
    NegotiationScore,
    ParsedQuote,
    Product,
    Rfq,
    SupplierNegotiation,
    SupplierProfile,
)
from quotes import quote_block_instructions, strip_quote_blocks

logger = logging.getLogger(__name__)

# Lazy client — instantiated on first use so import succeeds without an API key.
_client: AsyncOpenAI | None = None


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        _client = AsyncOpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
    return _client


class ResponderError(RuntimeError):
    """The conversational backend failed to produce a reply."""


ResponderInput = Union[str, Sequence[NegotiationMessage]]


class Responder(Protocol):
    """Anything that turns a prompt or a conversation into reply text."""

    async def generate(self, prompt: ResponderInput) -> str:
        ...


_ROLE_MAP = {"brand": "user", "supplier": "assistant"}


async def _complete(
    party: str,
    system_prompt: str,
    prompt: ResponderInput,
    timeout: float,
) -> str:
    messages: list[dict] = [{"role": "system", "content": system_prompt}]
    if isinstance(prompt, str):
        messages.append({"role": "user", "content": prompt})
    else:
        messages.extend(
            {"role": _ROLE_MAP[m.role], "content": m.content} for m in prompt
        )

    logger.debug("%s prompt: %s", party, messages[1:])
    try:
        request = _get_client().chat.completions.create(model=MODEL_NAME, messages=messages)
        if timeout > 0:
            completion = await asyncio.wait_for(request, timeout=timeout)
        else:
            completion = await request
    except asyncio.TimeoutError as exc:
        raise ResponderError(f"{party} LLM call timed out after {timeout:g}s") from exc
    except Exception as exc:
        raise ResponderError(f"{party} LLM call failed: {exc}") from exc

    reply = completion.choices[0].message.content or ""
    logger.debug("%s reply: %s", party, reply)
    return reply


# ---------------------------------------------------------------------------
# Supplier Agent
# ---------------------------------------------------------------------------

_SUPPLIER_TACTICS: dict[str, str] = {
    "supplier1": """
Your negotiation tactics — lead with COST:
- Open aggressively on price: 10–15% below target FOB
- Proactively suggest material substitutions using the EXACT component names from the BOM:
  * Replace "Premium Microfiber PU Leather" on FSH013 with certified synthetic PU → saves ~$1.40/unit
  * Replace "Full-Grain Cowhide Leather Upper" on FSH019 with premium bonded leather → saves ~$4.20/unit
  * Replace "Aluminum Gunmetal Eyelets" on FSH014 with zinc-alloy gunmetal eyelets → saves ~$0.35/unit
- Emphasize your 33/33/33 payment structure: the brand keeps cash longer than with a 30/70 split
- Offer a 5% discount for PO confirmation within 48 hours""",
    "supplier2": """
Your negotiation tactics — lead with QUALITY:
- Command premium pricing: your 4.7/5.0 rating means <0.5% defect rate (industry avg: 2.3%)
- Defend every component in the BOM: you source exactly the specified materials, no substitutions
- Quantify quality value: a lower defect rate saves the brand ~$3–5/unit in returns and rework
- Offer value-adds instead of discounts: inline QC reports, a pre-shipping audit, an on-site QC engineer
- If pressed hard, offer at most 3% "strategic partnership pricing" on the first order""",
    "supplier3": """
Your negotiation tactics — lead with SPEED:
- Open with the revenue value of your speed: 30 fewer days to market means earlier seasonal sell-through
- Reference components you hold in stock:
  * "Full-Grain Cowhide Leather Upper" for FSH019 — pre-positioned stock available
  * EVA and PU foam components for FSH013, FSH016, FSH021 — held in your warehouse
- Offer an expedited 10–12 day option for a +15% premium on urgent restocks
- If pushed on price, offer a 4–5% discount tied to PO confirmation within 48 hours""",
}


def _build_supplier_system_prompt(supplier: SupplierProfile, products: Sequence[Product]) -> str:
    direction = "above" if supplier.price_multiplier > 1 else "below"
    codes = [p.code for p in products]

    common = f"""You are a senior sales representative for {supplier.name}, a footwear manufacturing supplier.

Company profile:
- Quality rating: {supplier.quality_rating}/5.0
- Lead time: {supplier.lead_time_range} days
- Standard payment terms: {supplier.payment_terms}
- Pricing: typically {supplier.pricing_deviation_pct}% {direction} the brand's target FOB
- Core strength: {supplier.strength}

Negotiation rules:
- Maximum discount: 5% off your initial quote (8% only if you are about to lose the order)
- Never compromise your certified quality spec
- Always confirm lead time and payment terms explicitly
- Be professional and persuasive — you want this order

The brand may include a Bill of Materials (BOM) for each product. Use the actual component
names from the BOM when suggesting substitutions — be specific, not generic.

IMPORTANT: Write ready-to-send messages. Never use bracket placeholders like [Your Name].
Always sign with your company name: {supplier.name}.

MANDATORY: End every response with a quote block in exactly this format (no extra lines inside):
{quote_block_instructions(codes)}"""

    return common + _SUPPLIER_TACTICS.get(supplier.id, "")


class SupplierAgent:
    """Responder speaking for one supplier persona."""

    def __init__(
        self,
        supplier: SupplierProfile,
        products: Sequence[Product],
        timeout: float = RESPONDER_TIMEOUT_SECONDS,
    ) -> None:
        self.supplier = supplier
        self.products = products
        self.timeout = timeout
        self.system_prompt = _build_supplier_system_prompt(supplier, products)

    async def generate(self, prompt: ResponderInput) -> str:
        return await _complete(self.supplier.name, self.system_prompt, prompt, self.timeout)


# ---------------------------------------------------------------------------
# Brand Agent
# ---------------------------------------------------------------------------

def _build_brand_system_prompt(suppliers: Sequence[SupplierProfile]) -> str:
    intel = "\n".join(
        f"- {s.name}: Quality Rating {s.quality_rating}/5.0 — {s.strength}"
        for s in suppliers
    )
    return (
        "You are a professional sourcing manager for a footwear brand. You negotiate "
        "with suppliers to secure the best deal across quality, cost, lead time, and "
        "payment terms.\n\n"
        f"Internal supplier intelligence (confidential):\n{intel}\n\n"
        "Your negotiation priorities (weighted):\n"
        "1. Total landed cost — stay at or below target FOB (35% weight)\n"
        "2. Quality assurance — minimize defect risk (30% weight)\n"
        "3. Lead time — under 35 days strongly preferred (25% weight)\n"
        "4. Payment terms — 33/33/33 structure improves cash flow vs 30/70 (10% weight)\n\n"
        "When counter-negotiating, reference the competitive landscape without revealing "
        "other suppliers' quotes, and stay firm on quality standards.\n\n"
        "When writing a decision summary, be direct and analytical and explain "
        "trade-offs clearly in 3–4 concise paragraphs."
    )


def _describe_quote(quote: Optional[ParsedQuote]) -> str:
    if quote is None:
        return "Quote format not parsed — see full response."
    prices = ", ".join(f"{code}=${price}" for code, price in quote.unit_prices.items())
    return (
        f"Total quoted: {format_usd(quote.total_value)}\n"
        f"  Lead time: {quote.lead_time_days} days\n"
        f"  Payment: {quote.payment_terms}\n"
        f"  Unit prices: {prices}"
    )


def build_reflection_prompt(
    rfq: Rfq,
    round1: Sequence[tuple[SupplierProfile, str, Optional[ParsedQuote]]],
) -> str:
    summaries = "\n\n".join(
        f"=== {profile.name} ===\n{strip_quote_blocks(reply)}\n\n"
        f"Extracted quote data:\n{_describe_quote(quote)}"
        for profile, reply, quote in round1
    )
    return f"""You are the brand sourcing manager. You have just received Round 1 proposals from {len(round1)} suppliers.

RFQ total estimated value at target FOB: {format_usd(rfq.estimated_value)}

{summaries}

---

Generate a STRATEGIC MEMO for Round 2. For each supplier, output in this exact structure:

=== [Supplier Name] ===
Round 1 summary: [1-2 sentences on their offer and key highlights]
Material alternatives offered: [specific component names they proposed to substitute, or "None proposed"]
Negotiation leverage: [what advantage you can use against them in round 2]
Round 2 strategy: [exactly what to push for — be specific, not generic]

Be analytical, reference actual numbers and component names from the proposals."""


def build_decision_prompt(
    negotiations: Mapping[str, SupplierNegotiation],
    scores: Mapping[str, NegotiationScore],
    winner: str,
) -> str:
    summaries = []
    for sid, score in scores.items():
        neg = negotiations[sid]
        quote = neg.final_quote
        total = format_usd(quote.total_value) if quote and quote.total_value else "N/A"
        lead = quote.lead_time_days if quote else "?"
        summaries.append(
            f"{neg.profile.name}: Quality {neg.profile.quality_rating}/5.0 | "
            f"Lead time {lead} days | Total {total}\n"
            f"  Scores → Price: {score.price_score} | Quality: {score.quality_score} | "
            f"Lead time: {score.lead_time_score} | Payment: {score.payment_score} | "
            f"Overall: {score.total}/10"
        )

    winner_name = negotiations[winner].profile.name
    return f"""You are the sourcing manager writing the final supplier selection report.

{chr(10).join(summaries)}

SELECTED SUPPLIER: {winner_name} — Overall score: {scores[winner].total}/10

Write a concise 3-paragraph rationale:
Paragraph 1: Why {winner_name} was selected — their strongest differentiator.
Paragraph 2: Trade-offs acknowledged vs the other suppliers.
Paragraph 3: Recommended next steps for the partnership.

Be direct. Reference actual scores and numbers."""


class BrandAgent:
    """Responder speaking for the buyer: reflection memo and decision rationale."""

    name = "Brand Sourcing Agent"

    def __init__(
        self,
        suppliers: Sequence[SupplierProfile],
        timeout: float = RESPONDER_TIMEOUT_SECONDS,
    ) -> None:
        self.suppliers = suppliers
        self.timeout = timeout
        self.system_prompt = _build_brand_system_prompt(suppliers)

    async def generate(self, prompt: ResponderInput) -> str:
        return await _complete(self.name, self.system_prompt, prompt, self.timeout)

