from __future__ import annotations

import json

import pytest
from unittest.mock import patch
from starlette.testclient import TestClient

from main import app, _parse_quantities


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_QUANTITIES = {
    "FSH013": 10000,
    "FSH014": 5000,
    "FSH016": 5000,
    "FSH019": 5000,
    "FSH021": 5000,
}


def _run_negotiation(extra_payload: dict | None = None) -> list[dict]:
    """Open a WebSocket, run a full negotiation, and return all received messages."""
    payload = {"type": "start_negotiation", "quantities": _QUANTITIES}
    if extra_payload:
        payload.update(extra_payload)

    with TestClient(app) as client:
        with client.websocket_connect("/ws/negotiate") as ws:
            ws.send_json(payload)
            messages = []
            while True:
                data = ws.receive_json()
                messages.append(data)
                if data["type"] in ("done", "error"):
                    break
    return messages


@pytest.fixture
def fresh_sse_status():
    # sse-starlette keeps a module-level exit event bound to the first event loop.
    from sse_starlette.sse import AppStatus
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield


# ---------------------------------------------------------------------------
# Plain endpoints
# ---------------------------------------------------------------------------

def test_health_returns_ok_json():
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_products_lists_catalog():
    with TestClient(app) as client:
        response = client.get("/api/products")
    codes = [p["code"] for p in response.json()]
    assert codes == ["FSH013", "FSH014", "FSH016", "FSH019", "FSH021"]
    assert response.json()[0]["defaultQuantity"] == 10000


# ---------------------------------------------------------------------------
# _parse_quantities helper
# ---------------------------------------------------------------------------

class TestParseQuantities:
    def test_valid_json_object(self):
        assert _parse_quantities('{"FSH013": 2500}') == {"FSH013": 2500}

    @pytest.mark.parametrize("raw", [None, "", "not json {{", "[1, 2]", "42"])
    def test_malformed_input_means_defaults(self, raw):
        assert _parse_quantities(raw) == {}

    def test_non_integer_values_are_dropped(self):
        assert _parse_quantities('{"FSH013": "many", "FSH014": 10, "FSH016": true}') == {"FSH014": 10}


# ---------------------------------------------------------------------------
# SSE
# ---------------------------------------------------------------------------

def test_sse_stream_forwards_engine_events(fresh_sse_status):
    seen = {}

    async def _fake_stream(req):
        seen["request"] = req
        yield {"type": "rfq_ready", "rfq": {"products": [], "note": "", "estimated_value": 0}}
        yield {"type": "done"}

    with patch("main.run_negotiation_stream", _fake_stream):
        with TestClient(app) as client:
            response = client.get(
                "/api/negotiate/stream",
                params={"quantities": json.dumps({"FSH013": 100}), "note": "Rush"},
            )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = [
        json.loads(line[len("data:"):].strip())
        for line in response.text.splitlines()
        if line.startswith("data:")
    ]
    assert [e["type"] for e in events] == ["rfq_ready", "done"]
    assert seen["request"].quantities == {"FSH013": 100}
    assert seen["request"].note == "Rush"


# ---------------------------------------------------------------------------
# WebSocket happy path (LLM mocked by conftest: replies carry no quote block)
# ---------------------------------------------------------------------------

def test_negotiation_ends_with_done():
    types = [m["type"] for m in _run_negotiation()]
    assert types[0] == "rfq_ready"
    assert types[-1] == "done"


def test_negotiation_emits_reflection_scores_and_decision_in_order():
    types = [m["type"] for m in _run_negotiation()]
    assert types.index("reflection") < types.index("scores") < types.index("decision") < types.index("done")


def test_negotiation_all_three_suppliers_receive_messages():
    messages = _run_negotiation()
    chat = [m for m in messages if m["type"] == "message"]
    assert {m["supplier_id"] for m in chat} == {"supplier1", "supplier2", "supplier3"}
    assert len(chat) == 12


def test_negotiation_message_events_have_required_fields():
    for event in (m for m in _run_negotiation() if m["type"] == "message"):
        msg = event["message"]
        assert msg["role"] in ("brand", "supplier")
        assert msg["round"] in (1, 2)
        for key in ("id", "content", "timestamp", "supplier_id"):
            assert key in msg


def test_unquoted_replies_still_produce_a_decision():
    messages = _run_negotiation()
    scores = next(m for m in messages if m["type"] == "scores")["scores"]
    decision = next(m for m in messages if m["type"] == "decision")
    assert len(scores) == 3
    assert all(s["price_score"] == 8.0 for s in scores.values())
    assert decision["winner"] == "supplier2"  # quality rating decides
    assert decision["reasoning"] == "Mocked LLM response."
    assert not any(m["type"] == "quote_parsed" for m in messages)


def test_negotiation_accepts_optional_note(mock_openai):
    _run_negotiation(extra_payload={"note": "Prioritise lead time over cost."})
    prompts = [
        call.kwargs["messages"][-1]["content"]
        for call in mock_openai.chat.completions.create.call_args_list
    ]
    assert any("Sourcing note: Prioritise lead time over cost." in p for p in prompts)


def test_quantities_are_optional():
    with TestClient(app) as client:
        with client.websocket_connect("/ws/negotiate") as ws:
            ws.send_json({"type": "start_negotiation"})
            first = ws.receive_json()
    assert first["type"] == "rfq_ready"
    assert sum(p["quantity"] for p in first["rfq"]["products"]) == 30000


# ---------------------------------------------------------------------------
# WebSocket error paths
# ---------------------------------------------------------------------------

def test_llm_failure_ends_with_error_event(mock_openai):
    mock_openai.chat.completions.create.side_effect = Exception("rate limited")
    messages = _run_negotiation()
    assert messages[-1]["type"] == "error"
    assert "rate limited" in messages[-1]["error"]
    assert all(m["type"] != "done" for m in messages)


def test_wrong_message_type_returns_error():
    with TestClient(app) as client:
        with client.websocket_connect("/ws/negotiate") as ws:
            ws.send_json({"type": "unknown_event"})
            response = ws.receive_json()
    assert response["type"] == "error"


def test_invalid_json_returns_error():
    with TestClient(app) as client:
        with client.websocket_connect("/ws/negotiate") as ws:
            ws.send_text("this is not valid json {{{{")
            response = ws.receive_json()
    assert response["type"] == "error"


def test_invalid_quantities_return_error():
    with TestClient(app) as client:
        with client.websocket_connect("/ws/negotiate") as ws:
            ws.send_json({"type": "start_negotiation", "quantities": {"FSH013": "lots"}})
            response = ws.receive_json()
    assert response["type"] == "error"
    assert "Invalid request" in response["error"]
