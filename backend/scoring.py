"""Weighted cross-supplier scoring.

Scoring weights:
    price       35%
    quality     30%
    lead_time   25%
    payment     10%
"""

from __future__ import annotations

import math
from typing import Mapping

from models import NegotiationScore, SupplierNegotiation

WEIGHTS = {
    "price": 0.35,
    "quality": 0.30,
    "lead_time": 0.25,
    "payment": 0.10,
}

# Normalised range: best value scores BEST_SCORE, worst scores WORST_SCORE.
BEST_SCORE = 10.0
WORST_SCORE = 4.0
FLAT_SCORE = 8.0

# Lead time assumed for a supplier that never produced a quote.
UNQUOTED_LEAD_TIME_DAYS = 60

# Staged payment (33/33/33) spreads risk more evenly than 30/70.
PAYMENT_SCORES: dict[str, float] = {"supplier1": 9.0}
DEFAULT_PAYMENT_SCORE = 6.0


def _normalise(value: float, low: float, high: float) -> float:
    """Map ``low`` → 10 and ``high`` → 4 linearly."""
    return BEST_SCORE - (value - low) / (high - low) * (BEST_SCORE - WORST_SCORE)


def _price_scores(totals: dict[str, float]) -> dict[str, float]:
    values = set(totals.values())
    if len(values) <= 1:
        return {sid: FLAT_SCORE for sid in totals}

    finite = [v for v in totals.values() if math.isfinite(v)]
    low, high = min(finite), max(finite)
    scores = {}
    for sid, total in totals.items():
        if not math.isfinite(total):
            scores[sid] = WORST_SCORE
        elif high == low:
            scores[sid] = BEST_SCORE
        else:
            scores[sid] = _normalise(total, low, high)
    return scores


def _lead_time_scores(leads: dict[str, int]) -> dict[str, float]:
    low, high = min(leads.values()), max(leads.values())
    if low == high:
        return {sid: FLAT_SCORE for sid in leads}
    return {sid: _normalise(days, low, high) for sid, days in leads.items()}


def score_suppliers(
    negotiations: Mapping[str, SupplierNegotiation],
) -> dict[str, NegotiationScore]:
    """Score every supplier's final terms on a 0–10 scale.

    The returned map is ordered by supplier id regardless of the input order.
    A supplier without a final quote is scored as the most expensive and
    slowest option.
    """
    ordered = sorted(negotiations)
    if not ordered:
        return {}

    totals = {
        sid: negotiations[sid].final_quote.total_value
        if negotiations[sid].final_quote is not None else math.inf
        for sid in ordered
    }
    leads = {
        sid: negotiations[sid].final_quote.lead_time_days
        if negotiations[sid].final_quote is not None else UNQUOTED_LEAD_TIME_DAYS
        for sid in ordered
    }
    price = _price_scores(totals)
    lead_time = _lead_time_scores(leads)

    scores: dict[str, NegotiationScore] = {}
    for sid in ordered:
        components = {
            "price": round(price[sid], 1),
            "quality": round(negotiations[sid].profile.quality_rating * 2, 1),
            "lead_time": round(lead_time[sid], 1),
            "payment": round(PAYMENT_SCORES.get(sid, DEFAULT_PAYMENT_SCORE), 1),
        }
        total = sum(components[k] * w for k, w in WEIGHTS.items())
        scores[sid] = NegotiationScore(
            price_score=components["price"],
            quality_score=components["quality"],
            lead_time_score=components["lead_time"],
            payment_score=components["payment"],
            total=round(total, 1),
        )
    return scores


def pick_winner(
    scores: Mapping[str, NegotiationScore],
    negotiations: Mapping[str, SupplierNegotiation],
) -> str:
    """Return the id with the highest total.

    Ties go to a supplier holding a final quote, then to the lowest id.
    """
    if not scores:
        raise ValueError("Cannot pick a winner without scores")
    return min(
        scores,
        key=lambda sid: (
            -scores[sid].total,
            negotiations[sid].final_quote is None,
            sid,
        ),
    )
