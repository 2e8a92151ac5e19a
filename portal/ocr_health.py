from __future__ import annotations
from flask import Blueprint, jsonify
from nutrition import config, ocr_helper

bp = Blueprint("ocr_health", __name__)

@bp.route("/ocr/health", methods=["GET"])
def ocr_health():
    tesseract = ocr_helper.check_tesseract()
    return jsonify({
        "ok": bool(tesseract.get("found_on_disk")),
        "tesseract": tesseract,
        "lang": config.TESSERACT_LANG,
        "config": config.TESSERACT_CONFIG,
    })
