from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from config import LOG_LEVEL
from engine import run_negotiation_stream
from models import NegotiationRequest
from suppliers import default_catalog

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/products")
async def list_products():
    return [p.model_dump() for p in default_catalog().products]


def _parse_quantities(raw: Optional[str]) -> dict[str, int]:
    """Decode the ``quantities`` query parameter; anything malformed means defaults."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed quantities: %r", raw)
        return {}
    if not isinstance(data, dict):
        return {}
    return {
        code: qty for code, qty in data.items()
        if isinstance(qty, int) and not isinstance(qty, bool)
    }


# ---------------------------------------------------------------------------
# Server-sent events
# ---------------------------------------------------------------------------

@app.get("/api/negotiate/stream")
async def negotiate_stream(
    quantities: Optional[str] = Query(default=None),
    note: Optional[str] = Query(default=None),
):
    req = NegotiationRequest(quantities=_parse_quantities(quantities), note=note)
    logger.info("SSE negotiation requested (%d quantity overrides)", len(req.quantities))

    async def events():
        async for event in run_negotiation_stream(req):
            yield {"data": json.dumps(event)}

    return EventSourceResponse(events())


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

@app.websocket("/ws/negotiate")
async def negotiate(ws: WebSocket):
    await ws.accept()

    try:
        raw = await ws.receive_text()
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            await ws.send_json({"type": "error", "error": "Invalid JSON payload"})
            return

        if not isinstance(payload, dict) or payload.get("type") != "start_negotiation":
            await ws.send_json({"type": "error", "error": "Expected start_negotiation message"})
            return

        try:
            req = NegotiationRequest(
                quantities=payload.get("quantities") or {},
                note=payload.get("note"),
            )
        except ValidationError as exc:
            await ws.send_json({"type": "error", "error": f"Invalid request: {exc}"})
            return

        stream = run_negotiation_stream(req)
        try:
            async for event in stream:
                await ws.send_json(event)
        finally:
            await stream.aclose()

    except WebSocketDisconnect:
        logger.info("WebSocket client disconnected")

