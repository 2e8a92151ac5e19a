# portal/app.py
from flask import Flask, jsonify, request

# --- Standard libs & typing ---
import logging
from typing import Any, Dict, Tuple

# safer filename + big-file error handling
from werkzeug.utils import secure_filename
from werkzeug.exceptions import RequestEntityTooLarge

from PIL import UnidentifiedImageError
import pytesseract

from nutrition import config
from nutrition.contracts import OcrPayloadError, parse_ocr_payload
from nutrition.label_pipeline import extract_label
from nutrition.ocr_helper import tesseract_payload_from_bytes
from portal.contracts import as_bool, split_extract_request, validate_extract_request
from portal.ocr_health import bp as ocr_health_bp

log = logging.getLogger(__name__)

# ------------------------
# App & Config
# ------------------------
config.configure_logging()

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = int(config.MAX_CONTENT_LENGTH_MB * 1024 * 1024)

app.register_blueprint(ocr_health_bp)


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in config.ALLOWED_IMAGE_EXTENSIONS


def _error(msg: str, status: int) -> Tuple[Any, int]:
    return jsonify({"ok": False, "error": msg}), status


def _respond(result: Dict[str, Any], context: Any = None) -> Tuple[Any, int]:
    body: Dict[str, Any] = {"ok": True, **result}
    if context is not None:
        body["context"] = context
    return jsonify(body), 200


@app.errorhandler(RequestEntityTooLarge)
def _too_large(_e):
    return _error("File too large. Try a smaller image or raise MAX_CONTENT_LENGTH_MB.", 413)


# ------------------------
# Label extraction API
# ------------------------
@app.post("/api/label/extract")
def label_extract():
    """OCR payload (flat, structured or Vision response) → label result."""
    if not request.is_json:
        return _error("Expected JSON payload", 400)
    body = request.get_json(silent=True)
    ok, err = validate_extract_request(body)
    if not ok:
        return _error(f"schema: {err}", 400)

    raw, envelope = split_extract_request(body)
    try:
        payload = parse_ocr_payload(raw)
    except OcrPayloadError as e:
        return _error(f"schema: {e}", 400)

    debug = as_bool(envelope["debug"]) if "debug" in envelope else None
    result = extract_label(payload, debug=debug)
    log.info("label extract: lines=%d nutrients=%d", len(result["lines"]), len(result["nutrients"]))
    return _respond(result, envelope.get("context"))


@app.post("/api/label/ocr")
def label_ocr():
    """Multipart image upload → Tesseract → label result."""
    if "file" not in request.files:
        return _error("No file field 'file' provided", 400)
    file = request.files["file"]
    if file.filename == "":
        return _error("Empty filename", 400)
    if not allowed_file(file.filename):
        return _error("Unsupported file type. Allowed: jpg, jpeg, png", 400)

    name = secure_filename(file.filename) or "upload"
    try:
        payload = tesseract_payload_from_bytes(file.read())
    except UnidentifiedImageError:
        return _error(f"Could not read image: {name}", 400)
    except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as e:
        log.warning("OCR failed for %s: %s", name, e)
        return _error(f"OCR error: {e}", 500)

    debug = as_bool(request.form["debug"]) if "debug" in request.form else None
    result = extract_label(payload, debug=debug)
    log.info("label ocr: file=%s lines=%d nutrients=%d",
             name, len(result["lines"]), len(result["nutrients"]))
    return _respond(result)


# ------------------------
# Run
# ------------------------
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=config.DEBUG_DEFAULT)
