# nutrition/ocr_helper.py
"""
Tesseract adapter — label photo → structured OCR payload.

Image prep mirrors the portal's light PIL normalization (EXIF transpose +
strip, grayscale, small contrast boost, unsharp mask). Words come from
pytesseract.image_to_data(Output.DICT) and are regrouped into the
page → block → paragraph → word shape contracts.parse_ocr_payload() accepts,
so the pipeline gets per-word confidence and the real page width.
"""

from __future__ import annotations

import io
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import pytesseract
from PIL import Image, ImageEnhance, ImageFilter, ImageOps
from pytesseract import Output

from . import config

log = logging.getLogger(__name__)


# =============================
# Tesseract
# =============================

def configure_tesseract_from_env() -> None:
    cmd = config.TESSERACT_CMD
    if cmd and os.path.isfile(cmd):
        pytesseract.pytesseract.tesseract_cmd = cmd


def check_tesseract() -> dict:
    try:
        configure_tesseract_from_env()
        ver = pytesseract.get_tesseract_version()
        return {"found_on_disk": True, "version": str(ver)}
    except Exception as e:
        return {"found_on_disk": False, "version": None, "error": str(e)}


# =============================
# PIL-only light normalization
# =============================

def apply_exif_orientation(img: Image.Image) -> Image.Image:
    """
    Rotate pixels according to EXIF Orientation, then strip EXIF so
    downstream consumers can't rotate again. Returns RGB image.
    """
    try:
        fixed = ImageOps.exif_transpose(img)
        buf = io.BytesIO()
        fixed.save(buf, format="PNG")
        buf.seek(0)
        return Image.open(buf).convert("RGB")
    except (OSError, ValueError) as e:
        log.debug("exif transpose skipped: %s", e)
        return img.convert("RGB")


def prepare_image(
    im: Image.Image,
    contrast_boost: float = 1.15,
    sharpen_radius: float = 1.0,
    unsharp_percent: int = 120,
    unsharp_threshold: int = 3,
) -> Image.Image:
    out = apply_exif_orientation(im)
    out = ImageOps.grayscale(out)
    if contrast_boost and contrast_boost != 1.0:
        out = ImageEnhance.Contrast(out).enhance(contrast_boost)
    if sharpen_radius > 0:
        out = out.filter(
            ImageFilter.UnsharpMask(
                radius=sharpen_radius,
                percent=unsharp_percent,
                threshold=unsharp_threshold,
            )
        )
    return out


# =============================
# image_to_data → payload
# =============================

def _word_from_data(i: int, data: Dict[str, List], conf_floor: float) -> Optional[Dict[str, Any]]:
    text = (data["text"][i] or "").strip()
    if not text:
        return None
    try:
        conf = float(data["conf"][i])
    except (TypeError, ValueError):
        conf = -1.0
    if conf < conf_floor:
        return None

    x, y = int(data["left"][i]), int(data["top"][i])
    w, h = max(0, int(data["width"][i])), max(0, int(data["height"][i]))
    if w <= 1 or h <= 1:
        return None

    return {
        "text": text,
        "confidence": round(conf / 100.0, 4),
        "boundingBox": {
            "vertices": [
                {"x": x, "y": y},
                {"x": x + w, "y": y},
                {"x": x + w, "y": y + h},
                {"x": x, "y": y + h},
            ]
        },
    }


def payload_from_tesseract_data(
    data: Dict[str, List],
    width: int,
    height: int,
    conf_floor: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Regroup image_to_data rows by (block_num, par_num) into one structured
    page; fullText keeps Tesseract's own (block, par, line) reading order.
    """
    floor = config.OCR_CONF_FLOOR if conf_floor is None else conf_floor
    blocks: Dict[int, Dict[int, List[Dict[str, Any]]]] = {}
    line_texts: Dict[Tuple[int, int, int], List[str]] = {}

    for i in range(len(data.get("text", []))):
        word = _word_from_data(i, data, floor)
        if word is None:
            continue
        b, p, ln = int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i])
        blocks.setdefault(b, {}).setdefault(p, []).append(word)
        line_texts.setdefault((b, p, ln), []).append(word["text"])

    full_text = "\n".join(" ".join(words) for _, words in sorted(line_texts.items()))
    page = {
        "width": width,
        "height": height,
        "blocks": [
            {"paragraphs": [{"words": paras[p]} for p in sorted(paras)]}
            for _, paras in sorted(blocks.items())
        ],
    }
    return {"fullText": full_text, "pages": [page]}


def tesseract_payload(image: Image.Image) -> Dict[str, Any]:
    """Pillow image → structured OCR payload dict. Raises on Tesseract failure."""
    configure_tesseract_from_env()
    prepared = prepare_image(image)
    data = pytesseract.image_to_data(
        prepared,
        lang=config.TESSERACT_LANG,
        output_type=Output.DICT,
        config=config.TESSERACT_CONFIG,
    )
    payload = payload_from_tesseract_data(data, prepared.width, prepared.height)
    log.debug("tesseract: words=%d size=%dx%d",
              sum(len(p["words"]) for b in payload["pages"][0]["blocks"] for p in b["paragraphs"]),
              prepared.width, prepared.height)
    return payload


def tesseract_payload_from_bytes(raw: bytes) -> Dict[str, Any]:
    with Image.open(io.BytesIO(raw)) as im:
        im.load()
        return tesseract_payload(im)
