"""
CLI runner (scripts/ocr_run.py).

Covers:
  - JSON payload file → summary on stdout, exit 0
  - --json prints the full result
  - missing file → exit 2
  - malformed payload → exit 1
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import ocr_run


def _write(tmp_path, payload) -> str:
    p = tmp_path / "label.json"
    p.write_text(json.dumps(payload), encoding="utf-8")
    return str(p)


class TestOcrRun:
    def test_summary(self, tmp_path, capsys):
        path = _write(tmp_path, {"fullText": "Serving size 30g\nProtein 5g\nSodium 300mg"})
        assert ocr_run.main([path]) == 0
        out = capsys.readouterr().out
        assert "Nutrients:" in out
        assert "protein_g" in out
        assert "size: 30 g" in out

    def test_json(self, tmp_path, capsys):
        path = _write(tmp_path, {"fullText": "Protein 5g"})
        assert ocr_run.main([path, "--json", "--debug"]) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["nutrients"]["protein_g"]["value"] == 5.0
        assert "debug" in result

    def test_missing_file(self, tmp_path):
        assert ocr_run.main([str(tmp_path / "nope.json")]) == 2

    def test_bad_payload(self, tmp_path):
        assert ocr_run.main([_write(tmp_path, {"nope": 1})]) == 1
