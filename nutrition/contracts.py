# nutrition/contracts.py
from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from .ocr_types import (
    FlatOcrPayload,
    OcrItem,
    OcrPage,
    OcrPayload,
    OcrWord,
    StructuredOcrPayload,
    Vertex,
)

"""
Contracts & validators for the OCR payload boundary.

The pipeline only ever sees one of two explicit shapes:
- FlatOcrPayload:       {fullText, items: [{text, boundingBox: [{x, y}, ...]}]}
- StructuredOcrPayload: pages → blocks → paragraphs → words → symbols

Everything that arrives over HTTP / from disk / from the Vision API is parsed
here first. A payload whose top level is not one of the accepted shapes is the
only hard failure (OcrPayloadError); individual malformed words are dropped
later by the token normalizer.

Accepted inputs:
- the flat dict above (camelCase or snake_case keys)
- a structured dict {fullText?, pages: [...]}
- a Google Vision images:annotate response, either the batch wrapper
  {responses: [...]} or a single response {textAnnotations, fullTextAnnotation}
- any of the above as a JSON string / bytes
"""

log = logging.getLogger(__name__)


class OcrPayloadError(ValueError):
    """Upstream OCR payload is not a shape this pipeline understands."""


# ---------------------------------------------------------------------------
# Basic helpers
# ---------------------------------------------------------------------------

def _finite(x: Any, fallback: float = 0.0) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return fallback
    return v if math.isfinite(v) else fallback


def _vertices(raw: Any) -> Tuple[Vertex, ...]:
    if not isinstance(raw, list):
        return ()
    out: List[Vertex] = []
    for v in raw:
        if not isinstance(v, dict):
            continue
        out.append({"x": _finite(v.get("x")), "y": _finite(v.get("y"))})
    return tuple(out)


def _full_text(obj: Dict[str, Any]) -> str:
    txt = obj.get("fullText", obj.get("full_text", ""))
    return txt if isinstance(txt, str) else ""


# ---------------------------------------------------------------------------
# Shape parsers
# ---------------------------------------------------------------------------

def _parse_flat(obj: Dict[str, Any]) -> FlatOcrPayload:
    items_raw = obj.get("items")
    if not isinstance(items_raw, list):
        raise OcrPayloadError("items must be a list")

    items: List[OcrItem] = []
    for it in items_raw:
        if not isinstance(it, dict):
            continue
        text = it.get("text", it.get("description", ""))
        bbox = it.get("boundingBox", it.get("bounding_box"))
        if isinstance(bbox, dict):
            # {"vertices": [...]}, Vision boundingPoly style
            bbox = bbox.get("vertices")
        items.append(OcrItem(text=str(text or ""), bounding_box=_vertices(bbox)))
    return FlatOcrPayload(full_text=_full_text(obj), items=tuple(items))


def _parse_word(word: Dict[str, Any], width: float, height: float,
                block_id: int, para_id: int) -> Optional[OcrWord]:
    symbols = word.get("symbols")
    if isinstance(symbols, list):
        text = "".join(str(s.get("text") or "") for s in symbols if isinstance(s, dict))
    else:
        text = str(word.get("text") or "")
    if not text:
        return None

    bbox = word.get("boundingBox") or {}
    verts: Tuple[Vertex, ...] = ()
    if isinstance(bbox, dict):
        verts = _vertices(bbox.get("vertices"))
        if not verts and bbox.get("normalizedVertices") and width and height:
            verts = tuple(
                {"x": v["x"] * width, "y": v["y"] * height}
                for v in _vertices(bbox.get("normalizedVertices"))
            )
    elif isinstance(bbox, list):
        verts = _vertices(bbox)

    conf = word.get("confidence")
    return OcrWord(
        text=text,
        vertices=verts,
        confidence=_finite(conf) if conf is not None else None,
        block_id=block_id,
        para_id=para_id,
    )


def _parse_structured(obj: Dict[str, Any], full_text: str = "") -> StructuredOcrPayload:
    pages_raw = obj.get("pages")
    if not isinstance(pages_raw, list):
        raise OcrPayloadError("pages must be a list")

    pages: List[OcrPage] = []
    for page in pages_raw:
        if not isinstance(page, dict):
            continue
        width = _finite(page.get("width"))
        height = _finite(page.get("height"))
        words: List[OcrWord] = []

        blocks = page.get("blocks") if isinstance(page.get("blocks"), list) else []
        for b, block in enumerate(blocks):
            if not isinstance(block, dict):
                continue
            paragraphs = block.get("paragraphs") if isinstance(block.get("paragraphs"), list) else []
            for pa, para in enumerate(paragraphs):
                if not isinstance(para, dict):
                    continue
                for word in para.get("words") or []:
                    if not isinstance(word, dict):
                        continue
                    w = _parse_word(word, width, height, b, pa)
                    if w is not None:
                        words.append(w)

        pages.append(OcrPage(width=width, height=height, words=tuple(words)))

    return StructuredOcrPayload(
        full_text=full_text or _full_text(obj) or str(obj.get("text") or ""),
        pages=tuple(pages),
    )


def parse_vision_response(resp: Dict[str, Any]) -> OcrPayload:
    """
    Google Vision DOCUMENT_TEXT_DETECTION response → payload.

    fullText comes from fullTextAnnotation.text, else textAnnotations[0].
    When the page tree is present it wins (it carries page width + word
    confidence); otherwise textAnnotations[1:] become flat items.
    """
    if "responses" in resp:
        responses = resp.get("responses")
        if not isinstance(responses, list):
            raise OcrPayloadError("responses must be a list")
        resp = responses[0] if responses and isinstance(responses[0], dict) else {}

    if isinstance(resp.get("error"), dict):
        raise OcrPayloadError(f"vision error: {resp['error'].get('message', 'unknown')}")

    fta = resp.get("fullTextAnnotation") if isinstance(resp.get("fullTextAnnotation"), dict) else {}
    annotations = resp.get("textAnnotations") if isinstance(resp.get("textAnnotations"), list) else []

    full_text = ""
    if isinstance(fta.get("text"), str):
        full_text = fta["text"]
    elif annotations and isinstance(annotations[0], dict):
        full_text = str(annotations[0].get("description") or "")

    if isinstance(fta.get("pages"), list) and fta["pages"]:
        return _parse_structured(fta, full_text=full_text)

    items = []
    for a in annotations[1:]:
        if not isinstance(a, dict):
            continue
        poly = a.get("boundingPoly") if isinstance(a.get("boundingPoly"), dict) else {}
        items.append({"text": a.get("description", ""), "boundingBox": poly.get("vertices", [])})
    return _parse_flat({"fullText": full_text, "items": items})


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def parse_ocr_payload(raw: Any) -> OcrPayload:
    """
    Validate + convert any accepted upstream shape into the tagged union.

    Raises OcrPayloadError (a ValueError) for undecodable JSON or an
    unrecognized top-level shape.
    """
    if isinstance(raw, (FlatOcrPayload, StructuredOcrPayload)):
        return raw

    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise OcrPayloadError(f"invalid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise OcrPayloadError("OCR payload must be a JSON object")

    if "responses" in raw or "textAnnotations" in raw or "fullTextAnnotation" in raw:
        payload = parse_vision_response(raw)
    elif "items" in raw:
        payload = _parse_flat(raw)
    elif "pages" in raw:
        payload = _parse_structured(raw)
    elif isinstance(raw.get("fullText", raw.get("full_text")), str):
        # text-only payload: no geometry, line fallback path downstream
        payload = FlatOcrPayload(full_text=_full_text(raw), items=())
    else:
        raise OcrPayloadError("unrecognized OCR payload: expected items, pages or a Vision response")

    log.debug("parsed OCR payload kind=%s", payload.kind)
    return payload
