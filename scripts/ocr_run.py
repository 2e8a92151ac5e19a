#!/usr/bin/env python3
"""
Run the nutrition label pipeline from the command line.

  python scripts/ocr_run.py label.json            # OCR payload (flat / structured / Vision)
  python scripts/ocr_run.py photo.jpg             # Tesseract first
  python scripts/ocr_run.py label.json --json     # full result as JSON
  python scripts/ocr_run.py label.json --debug    # include the debug block
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from nutrition import config  # noqa: E402
from nutrition.contracts import OcrPayloadError  # noqa: E402
from nutrition.label_pipeline import extract_label  # noqa: E402
from nutrition.ocr_helper import tesseract_payload_from_bytes  # noqa: E402

IMAGE_SUFFIXES = {f".{ext}" for ext in config.ALLOWED_IMAGE_EXTENSIONS}


def _load(path: Path):
    if path.suffix.lower() in IMAGE_SUFFIXES:
        return tesseract_payload_from_bytes(path.read_bytes())
    return path.read_text(encoding="utf-8")


def _print_summary(result) -> None:
    print("Lines:")
    for line in result["lines"]:
        print(f"  {line}")

    print("\nRows:")
    for row in result["rows"]:
        p = row["primary"]
        alts = ", ".join(a["raw"] for a in row["alternates"])
        print(f"  {row['label']:<28} {p['value']:>8g} {p['unit']:<5}" + (f"  (alt: {alts})" if alts else ""))

    print("\nNutrients:")
    for key, rec in result["nutrients"].items():
        print(f"  {key:<12} {rec['value']:>8g} {rec['unit']:<5} [{rec['confidence']}]")

    serving = result["serving"]
    size = serving["serving_size"]
    print("\nServing:")
    print(f"  size: {size['value']:g} {size['unit']}" if size else "  size: -")
    per_pack = serving["servings_per_pack"]
    print(f"  per pack: {per_pack:g}" if per_pack is not None else "  per pack: -")


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Nutrition label OCR post-processor")
    ap.add_argument("path", help="OCR payload (.json) or label image (.jpg/.jpeg/.png)")
    ap.add_argument("--json", action="store_true", help="print the full result as JSON")
    ap.add_argument("--debug", action="store_true", default=None, help="include the debug block")
    ap.add_argument("--log-level", default=None, help="override NUTRI_LOG_LEVEL")
    args = ap.parse_args(argv)

    config.configure_logging(args.log_level.upper() if args.log_level else None)

    path = Path(args.path)
    if not path.exists():
        print(f"[ocr_run] not found: {path}", file=sys.stderr)
        return 2

    try:
        result = extract_label(_load(path), debug=args.debug)
    except OcrPayloadError as e:
        print(f"[ocr_run] bad payload: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        _print_summary(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
