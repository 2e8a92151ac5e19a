"""
Token Normalizer — OCR words/vertices → axis-aligned Token boxes.

Both payload shapes end up in one pixel-style coordinate space:
- flat items: vertices are absolute pixels (Vision textAnnotations)
- structured pages: vertices are pixels, page width recorded per token
- pre-normalized fractions (every coordinate within 0..1) are scaled into a
  virtual NORMALIZED_SCALE×NORMALIZED_SCALE page so the pixel tolerances of
  the line reconstructor still apply

Empty-text words and words with no vertices are dropped silently; OCR emits
stray empty annotations all the time.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from .ocr_types import FlatOcrPayload, OcrPayload, StructuredOcrPayload, Token, Vertex

log = logging.getLogger(__name__)

NORMALIZED_SCALE = 1000.0


def _is_fractional(vertex_sets: Iterable[Sequence[Vertex]]) -> bool:
    seen = False
    for verts in vertex_sets:
        for v in verts:
            seen = True
            if v.get("x", 0.0) > 1.0 or v.get("y", 0.0) > 1.0:
                return False
    return seen


def token_from_vertices(
    text: str,
    vertices: Sequence[Vertex],
    *,
    scale: float = 1.0,
    y_offset: float = 0.0,
    conf: Optional[float] = None,
    page_width: Optional[float] = None,
) -> Optional[Token]:
    text = (text or "").strip()
    if not text or not vertices:
        return None

    xs = [float(v.get("x", 0.0)) * scale for v in vertices]
    ys = [float(v.get("y", 0.0)) * scale + y_offset for v in vertices]

    return Token(
        text=text,
        x_min=min(xs),
        x_max=max(xs),
        y_min=min(ys),
        y_max=max(ys),
        conf=conf,
        page_width=page_width,
    )


def _flat_tokens(payload: FlatOcrPayload) -> List[Token]:
    scale = 1.0
    page_width: Optional[float] = None
    if _is_fractional(it.bounding_box for it in payload.items):
        scale = NORMALIZED_SCALE
        page_width = NORMALIZED_SCALE

    out: List[Token] = []
    for it in payload.items:
        tok = token_from_vertices(it.text, it.bounding_box, scale=scale, page_width=page_width)
        if tok is not None:
            out.append(tok)
    return out


def _structured_tokens(payload: StructuredOcrPayload) -> List[Token]:
    out: List[Token] = []
    y_offset = 0.0
    for page in payload.pages:
        scale = 1.0
        page_width: Optional[float] = page.width or None
        page_height = page.height
        if _is_fractional(w.vertices for w in page.words):
            scale = NORMALIZED_SCALE
            page_width = NORMALIZED_SCALE
            page_height = NORMALIZED_SCALE

        for w in page.words:
            tok = token_from_vertices(
                w.text,
                w.vertices,
                scale=scale,
                y_offset=y_offset,
                conf=w.confidence,
                page_width=page_width,
            )
            if tok is not None:
                out.append(tok)

        # stack pages vertically so lines never merge across pages
        if page_height:
            y_offset += page_height
        else:
            y_offset = max((t.y_max for t in out), default=y_offset) + 1.0
    return out


def normalize_tokens(payload: OcrPayload) -> List[Token]:
    if isinstance(payload, StructuredOcrPayload):
        tokens = _structured_tokens(payload)
    else:
        tokens = _flat_tokens(payload)
    log.debug("token normalizer: kind=%s tokens=%d", payload.kind, len(tokens))
    return tokens
