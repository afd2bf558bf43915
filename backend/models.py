from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class ProductComponent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    name: str
    composition: Optional[str] = None
    function: Optional[str] = None


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    description: str = ""
    targetFob: float
    defaultQuantity: int
    categoryPath: str = ""
    components: tuple[ProductComponent, ...] = ()

    @property
    def materials(self) -> list[ProductComponent]:
        return [c for c in self.components if c.type == "material"]

    @property
    def trims(self) -> list[ProductComponent]:
        return [c for c in self.components if c.type != "material"]


class SupplierProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    quality_rating: float = Field(ge=0, le=5)
    price_multiplier: float
    lead_time_range: str
    lead_time_min: int
    payment_terms: str
    strength: str

    @property
    def pricing_deviation_pct(self) -> int:
        """Typical distance from the target FOB, in whole percent."""
        return round(abs(self.price_multiplier - 1) * 100)


# ---------------------------------------------------------------------------
# Negotiation state
# ---------------------------------------------------------------------------

class NegotiationRequest(BaseModel):
    quantities: dict[str, int] = Field(default_factory=dict)
    note: Optional[str] = None


def _new_message_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NegotiationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_message_id)
    supplier_id: str
    role: Literal["brand", "supplier"]
    content: str
    round: Literal[1, 2]
    timestamp: datetime = Field(default_factory=_utcnow)


class ParsedQuote(BaseModel):
    model_config = ConfigDict(frozen=True)

    unit_prices: dict[str, float]
    lead_time_days: int = 30
    payment_terms: str = ""
    total_value: float = 0.0


class SupplierNegotiation(BaseModel):
    profile: SupplierProfile
    messages: list[NegotiationMessage] = Field(default_factory=list)
    final_quote: Optional[ParsedQuote] = None
    # Set when the supplier's responder failed; None for an extraction miss.
    failure: Optional[str] = None


class NegotiationScore(BaseModel):
    price_score: float
    quality_score: float
    lead_time_score: float
    payment_score: float
    total: float


class RfqLine(BaseModel):
    code: str
    name: str
    quantity: int
    targetFob: float


class Rfq(BaseModel):
    products: list[RfqLine]
    note: str = ""
    estimated_value: float


class NegotiationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    rfq: Rfq
    suppliers: dict[str, SupplierNegotiation]
    reflection: Optional[str] = None
    scores: dict[str, NegotiationScore]
    winner: str
    reasoning: str


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class RfqReadyEvent(BaseModel):
    type: Literal["rfq_ready"] = "rfq_ready"
    rfq: Rfq


class MessageEvent(BaseModel):
    type: Literal["message"] = "message"
    supplier_id: str
    message: NegotiationMessage


class QuoteParsedEvent(BaseModel):
    type: Literal["quote_parsed"] = "quote_parsed"
    supplier_id: str
    quote: ParsedQuote


class ReflectionEvent(BaseModel):
    type: Literal["reflection"] = "reflection"
    content: str


class SupplierErrorEvent(BaseModel):
    type: Literal["supplier_error"] = "supplier_error"
    supplier_id: str
    error: str


class ScoresEvent(BaseModel):
    type: Literal["scores"] = "scores"
    scores: dict[str, NegotiationScore]


class DecisionEvent(BaseModel):
    type: Literal["decision"] = "decision"
    winner: str
    winner_name: str
    reasoning: str


class DoneEvent(BaseModel):
    type: Literal["done"] = "done"


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


NegotiationEvent = Annotated[
    Union[
        RfqReadyEvent,
        MessageEvent,
        QuoteParsedEvent,
        ReflectionEvent,
        SupplierErrorEvent,
        ScoresEvent,
        DecisionEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]
