# portal/contracts.py
from __future__ import annotations
from typing import Any, Dict, Tuple

# Request-envelope keys the portal strips before handing the rest to the pipeline
EnvelopeKeys = {"debug", "context"}

def _is_boolish(x: Any) -> bool:
    return isinstance(x, bool) or x in (0, 1, "0", "1", "true", "false")

def split_extract_request(body: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """(ocr_payload, envelope) — envelope carries debug / context."""
    payload = {k: v for k, v in body.items() if k not in EnvelopeKeys}
    envelope = {k: body[k] for k in EnvelopeKeys if k in body}
    return payload, envelope

def validate_extract_request(body: Any) -> Tuple[bool, str]:
    if not isinstance(body, dict):
        return False, "request body must be a JSON object"

    if "debug" in body and not _is_boolish(body["debug"]):
        return False, "debug must be a boolean"
    if "context" in body and body["context"] is not None and not isinstance(body["context"], dict):
        return False, "context must be an object or null"

    return True, ""

def as_bool(x: Any) -> bool:
    if isinstance(x, str):
        return x.strip().lower() in ("1", "true")
    return bool(x)
