"""Two-round negotiation across every catalog supplier.

Round 1 (RFQ) fans out to all suppliers, then a barrier; the brand writes one
reflection memo; round 2 (counter) fans out again, then a barrier; final
quotes are scored and the brand narrates the decision. Every transition is
reported through ``emit`` as a typed event.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import AsyncIterator, Awaitable, Callable, Literal, Optional, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field

import config
from agents import (
    BrandAgent,
    Responder,
    ResponderError,
    SupplierAgent,
    build_decision_prompt,
    build_reflection_prompt,
)
from messages import build_counter, build_rfq, resolve_rfq
from models import (
    DecisionEvent,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    NegotiationEvent,
    NegotiationMessage,
    NegotiationRequest,
    NegotiationResult,
    ParsedQuote,
    Product,
    QuoteParsedEvent,
    ReflectionEvent,
    Rfq,
    RfqReadyEvent,
    ScoresEvent,
    SupplierErrorEvent,
    SupplierNegotiation,
    SupplierProfile,
)
from quotes import parse_quote
from scoring import pick_winner, score_suppliers
from suppliers import Catalog, default_catalog

logger = logging.getLogger(__name__)

T = TypeVar("T")

Emit = Callable[[NegotiationEvent], None]
SupplierResponderFactory = Callable[[SupplierProfile, Sequence[Product]], Responder]


class NegotiationError(RuntimeError):
    """The run cannot produce a result."""


class RunState(str, enum.Enum):
    INITIATED = "initiated"
    RFQ_EMITTED = "rfq_emitted"
    ROUND1_IN_FLIGHT = "round1_in_flight"
    ROUND1_COMPLETE = "round1_complete"
    REFLECTING = "reflecting"
    ROUND2_IN_FLIGHT = "round2_in_flight"
    ROUND2_COMPLETE = "round2_complete"
    SCORED = "scored"
    DECIDED = "decided"
    DONE = "done"
    FAILED = "failed"


class NegotiationSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    variant: Literal["reflective", "simple"] = "reflective"
    failure_policy: Literal["fail_run", "continue"] = "fail_run"
    # Seconds allowed per responder call; 0 disables the limit.
    responder_timeout: float = Field(default=90.0, ge=0)

    @classmethod
    def from_env(cls) -> "NegotiationSettings":
        return cls(
            variant=config.PROTOCOL_VARIANT,
            failure_policy=config.SUPPLIER_FAILURE_POLICY,
            responder_timeout=config.RESPONDER_TIMEOUT_SECONDS,
        )

    @property
    def reflective(self) -> bool:
        return self.variant == "reflective"


async def settle(tasks: Sequence[Awaitable[T]]) -> list[T | BaseException]:
    """Run ``tasks`` concurrently and wait until every one has finished.

    Failures are returned in place of results so siblings always complete.
    """
    return await asyncio.gather(*tasks, return_exceptions=True)


# ---------------------------------------------------------------------------
# Per-supplier negotiator
# ---------------------------------------------------------------------------

class SupplierNegotiator:
    """Drives one supplier through the RFQ and counter rounds."""

    def __init__(
        self,
        profile: SupplierProfile,
        responder: Responder,
        products: Sequence[Product],
        emit: Emit,
        include_bom: bool = True,
    ) -> None:
        self.profile = profile
        self.responder = responder
        self.products = products
        self.emit = emit
        self.include_bom = include_bom
        self.negotiation = SupplierNegotiation(profile=profile)
        self.round1_quote: Optional[ParsedQuote] = None
        self.round2_quote: Optional[ParsedQuote] = None

    @property
    def supplier_id(self) -> str:
        return self.profile.id

    @property
    def round1_reply(self) -> str:
        return self.negotiation.messages[1].content

    def _record(self, role: str, content: str, round_num: int) -> NegotiationMessage:
        message = NegotiationMessage(
            supplier_id=self.supplier_id,
            role=role,
            content=content,
            round=round_num,
        )
        self.negotiation.messages.append(message)
        self.emit(MessageEvent(supplier_id=self.supplier_id, message=message))
        return message

    def _extract(self, reply: str, round_num: int) -> Optional[ParsedQuote]:
        quote = parse_quote(reply)
        if quote is None:
            logger.warning("No quote block in %s round %d reply", self.supplier_id, round_num)
        return quote

    async def run_round1(self, rfq: Rfq) -> Optional[ParsedQuote]:
        request = build_rfq(rfq, self.products, self.profile.name, include_bom=self.include_bom)
        self._record("brand", request, 1)

        reply = await self.responder.generate(request)
        self._record("supplier", reply, 1)

        self.round1_quote = self._extract(reply, 1)
        self.negotiation.final_quote = self.round1_quote
        return self.round1_quote

    async def run_round2(self, reflection: Optional[str] = None) -> Optional[ParsedQuote]:
        counter = build_counter(self.profile.name, self.round1_reply, reflection)
        self._record("brand", counter, 2)

        reply = await self.responder.generate(list(self.negotiation.messages))
        self._record("supplier", reply, 2)

        self.round2_quote = self._extract(reply, 2)
        final = self.round2_quote if self.round2_quote is not None else self.round1_quote
        self.negotiation.final_quote = final
        if final is not None:
            self.emit(QuoteParsedEvent(supplier_id=self.supplier_id, quote=final))
        return final


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class NegotiationOrchestrator:
    def __init__(
        self,
        catalog: Catalog,
        emit: Emit,
        settings: Optional[NegotiationSettings] = None,
        supplier_factory: Optional[SupplierResponderFactory] = None,
        brand: Optional[Responder] = None,
    ) -> None:
        self.catalog = catalog
        self.emit = emit
        self.settings = settings or NegotiationSettings.from_env()
        timeout = self.settings.responder_timeout
        self.supplier_factory = supplier_factory or (
            lambda profile, products: SupplierAgent(profile, products, timeout=timeout)
        )
        self.brand = brand or BrandAgent(catalog.suppliers, timeout=timeout)
        self.state = RunState.INITIATED
        self.negotiators: list[SupplierNegotiator] = []

    def _advance(self, state: RunState) -> None:
        logger.info("Negotiation %s → %s", self.state.value, state.value)
        self.state = state

    def _barrier(
        self,
        negotiators: Sequence[SupplierNegotiator],
        outcomes: Sequence[object],
        stage: str,
    ) -> list[SupplierNegotiator]:
        """Apply the failure policy to a settled round; return the survivors."""
        survivors = []
        failures = []
        for negotiator, outcome in zip(negotiators, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("%s failed in %s: %s", negotiator.supplier_id, stage, outcome)
                failures.append((negotiator, outcome))
            else:
                survivors.append(negotiator)

        if failures and self.settings.failure_policy == "fail_run":
            detail = "; ".join(f"{n.profile.name}: {exc}" for n, exc in failures)
            raise NegotiationError(f"{stage} failed — {detail}")

        for negotiator, exc in failures:
            negotiator.negotiation.failure = str(exc) or exc.__class__.__name__
            self.emit(SupplierErrorEvent(
                supplier_id=negotiator.supplier_id,
                error=negotiator.negotiation.failure,
            ))

        if not survivors:
            raise NegotiationError(f"{stage} failed for every supplier")
        return survivors

    async def _ask_brand(self, prompt: str, stage: str) -> str:
        try:
            return await self.brand.generate(prompt)
        except ResponderError as exc:
            raise NegotiationError(f"{stage} failed — {exc}") from exc

    async def _reflect(self, rfq: Rfq, negotiators: Sequence[SupplierNegotiator]) -> str:
        round1 = [(n.profile, n.round1_reply, n.round1_quote) for n in negotiators]
        reflection = await self._ask_brand(build_reflection_prompt(rfq, round1), "Reflection")
        self.emit(ReflectionEvent(content=reflection))
        return reflection

    async def run(self, request: NegotiationRequest) -> NegotiationResult:
        try:
            return await self._run(request)
        except BaseException:
            self._advance(RunState.FAILED)
            raise

    async def _run(self, request: NegotiationRequest) -> NegotiationResult:
        products = self.catalog.products
        rfq = resolve_rfq(request.quantities, products, request.note)
        self._advance(RunState.RFQ_EMITTED)
        self.emit(RfqReadyEvent(rfq=rfq))

        self.negotiators = negotiators = [
            SupplierNegotiator(
                profile,
                self.supplier_factory(profile, products),
                products,
                self.emit,
                include_bom=self.settings.reflective,
            )
            for profile in self.catalog.suppliers
        ]

        self._advance(RunState.ROUND1_IN_FLIGHT)
        outcomes = await settle([n.run_round1(rfq) for n in negotiators])
        active = self._barrier(negotiators, outcomes, "Round 1")
        self._advance(RunState.ROUND1_COMPLETE)

        reflection = None
        if self.settings.reflective:
            self._advance(RunState.REFLECTING)
            reflection = await self._reflect(rfq, active)

        self._advance(RunState.ROUND2_IN_FLIGHT)
        outcomes = await settle([n.run_round2(reflection) for n in active])
        active = self._barrier(active, outcomes, "Round 2")
        self._advance(RunState.ROUND2_COMPLETE)

        scored = {n.supplier_id: n.negotiation for n in active}
        scores = score_suppliers(scored)
        self._advance(RunState.SCORED)
        self.emit(ScoresEvent(scores=scores))

        winner = pick_winner(scores, scored)
        reasoning = await self._ask_brand(
            build_decision_prompt(scored, scores, winner), "Decision"
        )
        self._advance(RunState.DECIDED)
        self.emit(DecisionEvent(
            winner=winner,
            winner_name=scored[winner].profile.name,
            reasoning=reasoning,
        ))

        result = NegotiationResult(
            rfq=rfq,
            # Snapshots: the live negotiations stay owned by their negotiators.
            suppliers={n.supplier_id: n.negotiation.model_copy(deep=True) for n in negotiators},
            reflection=reflection,
            scores=scores,
            winner=winner,
            reasoning=reasoning,
        )
        self._advance(RunState.DONE)
        self.emit(DoneEvent())
        return result


async def run_negotiation(
    request: NegotiationRequest,
    emit: Emit,
    catalog: Optional[Catalog] = None,
    settings: Optional[NegotiationSettings] = None,
    supplier_factory: Optional[SupplierResponderFactory] = None,
    brand: Optional[Responder] = None,
) -> NegotiationResult:
    orchestrator = NegotiationOrchestrator(
        catalog or default_catalog(),
        emit,
        settings=settings,
        supplier_factory=supplier_factory,
        brand=brand,
    )
    return await orchestrator.run(request)


async def run_negotiation_stream(
    request: NegotiationRequest,
    catalog: Optional[Catalog] = None,
    settings: Optional[NegotiationSettings] = None,
    supplier_factory: Optional[SupplierResponderFactory] = None,
    brand: Optional[Responder] = None,
) -> AsyncIterator[dict]:
    """Yield JSON-ready events; the last one is always ``done`` or ``error``.

    Closing the iterator cancels the run.
    """
    queue: asyncio.Queue[Optional[NegotiationEvent]] = asyncio.Queue()

    async def drive() -> None:
        try:
            await run_negotiation(
                request,
                queue.put_nowait,
                catalog=catalog,
                settings=settings,
                supplier_factory=supplier_factory,
                brand=brand,
            )
        except Exception as exc:
            logger.exception("Negotiation run failed")
            queue.put_nowait(ErrorEvent(error=str(exc) or exc.__class__.__name__))
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(drive())
    try:
        while (event := await queue.get()) is not None:
            yield event.model_dump(mode="json")
    finally:
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
