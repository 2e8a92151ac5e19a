"""
Runtime configuration — environment-driven, optionally loaded from .env.

Pipeline heuristics stay as module-level constants in their own modules; this
file only covers knobs that differ per deployment (OCR engine, logging, debug).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]

# Load .env if present (so TESSERACT_CMD etc. work without touching PATH)
load_dotenv(ROOT / ".env")


def _env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# -----------------------------
# Pipeline
# -----------------------------

DEBUG_DEFAULT = _env_flag("NUTRI_DEBUG")
LOG_LEVEL = (os.getenv("NUTRI_LOG_LEVEL") or "INFO").upper()

# -----------------------------
# Tesseract
# -----------------------------

TESSERACT_CMD: Optional[str] = os.getenv("TESSERACT_CMD") or None
TESSERACT_LANG = os.getenv("TESSERACT_LANG") or "eng"
TESSERACT_CONFIG = os.getenv("TESSERACT_CONFIG") or "--oem 3 --psm 6 -c preserve_interword_spaces=1"
OCR_CONF_FLOOR = _env_float("OCR_CONF_FLOOR", 30.0)

# -----------------------------
# Portal
# -----------------------------

MAX_CONTENT_LENGTH_MB = _env_float("MAX_CONTENT_LENGTH_MB", 20.0)
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png"}

_logging_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """basicConfig once for the portal / CLI entry points."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _logging_configured = True
