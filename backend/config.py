"""Environment configuration for the negotiation backend."""

import os
from dotenv import load_dotenv

load_dotenv()

# --- LLM ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
MODEL_NAME = os.getenv("MODEL_NAME", "gpt-4o-mini")

# Seconds allowed per responder call; 0 disables the limit.
RESPONDER_TIMEOUT_SECONDS = float(os.getenv("RESPONDER_TIMEOUT_SECONDS", "90"))

# --- Negotiation protocol ---
# "reflective" or "simple"; validated by engine.NegotiationSettings.
PROTOCOL_VARIANT = os.getenv("PROTOCOL_VARIANT", "reflective")
# "fail_run" or "continue".
SUPPLIER_FAILURE_POLICY = os.getenv("SUPPLIER_FAILURE_POLICY", "fail_run")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
