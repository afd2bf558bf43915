from __future__ import annotations

import sys
import pathlib

# Ensure the backend directory is importable when pytest is run from anywhere.
sys.path.insert(0, str(pathlib.Path(__file__).parent.parent))

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from engine import NegotiationSettings
from suppliers import Catalog, load_products, SUPPLIERS


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def fake_completion(content: str) -> MagicMock:
    """Return a minimal mock of an OpenAI ChatCompletion response."""
    choice = MagicMock()
    choice.message.content = content
    completion = MagicMock()
    completion.choices = [choice]
    return completion


def quote_reply(
    prices: dict[str, float],
    total: str | None = "1,000,000",
    lead_time: int | None = 30,
    payment: str | None = "30/70",
    prose: str = "Thank you for the opportunity.",
) -> str:
    """Render a supplier reply ending in a well-formed quote block."""
    lines = [f"{code}: ${price:.2f}/unit" for code, price in prices.items()]
    if lead_time is not None:
        lines.append(f"LEAD_TIME: {lead_time} days")
    if payment is not None:
        lines.append(f"PAYMENT: {payment}")
    if total is not None:
        lines.append(f"TOTAL_VALUE: ${total}")
    return prose + "\n\n===QUOTE===\n" + "\n".join(lines) + "\n===END_QUOTE==="


class ScriptedResponder:
    """Responder returning canned replies in order and recording every input."""

    def __init__(self, replies: list[str] | None = None, error: Exception | None = None):
        self.replies = list(replies or ["Scripted reply."])
        self.error = error
        self.calls: list = []

    async def generate(self, prompt):
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        return self.replies[index]


class ResponderPool:
    """Supplier responder factory handing out one ScriptedResponder per supplier."""

    def __init__(self, scripts: dict[str, ScriptedResponder]):
        self.scripts = scripts

    def __call__(self, profile, products):
        return self.scripts.setdefault(profile.id, ScriptedResponder())


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def products():
    """Load and return all products from products.json."""
    return load_products()


@pytest.fixture
def suppliers():
    """Return the 3 catalog SupplierProfile objects."""
    return list(SUPPLIERS)


@pytest.fixture
def catalog(products, suppliers):
    return Catalog(products=tuple(products), suppliers=tuple(suppliers))


@pytest.fixture
def quantities():
    """Default order quantities (10k Pulse Pro, 5k each other)."""
    return {
        "FSH013": 10000,
        "FSH014": 5000,
        "FSH016": 5000,
        "FSH019": 5000,
        "FSH021": 5000,
    }


@pytest.fixture
def settings():
    return NegotiationSettings(variant="reflective", failure_policy="fail_run", responder_timeout=0)


@pytest.fixture(autouse=True)
def mock_openai():
    """
    Auto-used: patches agents._get_client for every test so no test can
    accidentally reach the real OpenAI API.  Tests that configure specific
    LLM responses receive the mock client via fixture injection.
    """
    client = AsyncMock()
    client.chat.completions.create.return_value = fake_completion("Mocked LLM response.")
    with patch("agents._get_client", return_value=client):
        yield client
