"""
Dual-column classifier, nutrient mapper and cross-column confidence.

Covers:
  Column classifier (nutrition/columns.py):
  - numeric-token detection (unit required, % excluded)
  - x-center sweep clustering + nearest-pair merge down to 3 clusters
  - label / per-serve / per-100g banding, % tokens discarded
  - nutrition-row filter and ordered label → key rules
  - classify_columns() on a realistic AU-style panel

  Nutrient mapper (nutrition/nutrient_map.py):
  - kJ vs kcal per column, fibre without a unit, sodium grams → mg,
    first-number parser
  - first row per key wins; saturated recognized but not mapped
  - validate_readings(): Med upgrade, rejection, derived Low, ceilings
  - merge_nutrient_sources(): flat wins, parsed fills gaps, veto

  Confidence (nutrition/scoring/confidence.py):
  - 12 / 20 / 60 → Med; 12 / 100 / 60 → rejected
  - serving < 5 → sentinel 1, cross-validation skipped
  - plausibility ceilings
"""

from __future__ import annotations

import math
import sys
from pathlib import Path
from typing import List

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from nutrition.columns import (
    ColumnRow,
    classify_columns,
    classify_row,
    cluster_columns,
    is_likely_nutrition_row,
    is_numeric_token,
    match_nutrient_key,
)
from nutrition.layout.line_builder import build_lines
from nutrition.nutrient_map import (
    map_column_rows,
    merge_nutrient_sources,
    parse_energy,
    parse_fibre,
    parse_sodium,
    parse_value,
    validate_readings,
)
from nutrition.ocr_types import ColumnReading, Token
from nutrition.scoring.confidence import (
    cross_validate,
    is_plausible,
    is_serving_detected,
    relative_deviation,
    resolve_serving_size,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

PAGE_WIDTH = 1000.0


def _tok(text: str, x: float, y: float, w: float = 60, h: float = 14) -> Token:
    return Token(text=text, x_min=x, x_max=x + w, y_min=y, y_max=y + h, page_width=PAGE_WIDTH)


def _panel_tokens() -> List[Token]:
    """Label words left, per-serve around x=0.43, per-100g around x=0.78."""
    rows = [
        (["Energy"], "1250kJ", "2080kJ"),
        (["Protein"], "5.0g", "8.3g"),
        (["Fat,", "total"], "3.1g", "5.2g"),
        (["-", "saturated"], "1.2g", "2.0g"),
        (["Carbohydrate"], "40.2g", "67.0g"),
        (["Sodium"], "120mg", "200mg"),
    ]
    toks: List[Token] = []
    y = 100.0
    for words, per_serve, per_100g in rows:
        x = 40.0
        for w in words:
            toks.append(_tok(w, x, y, w=12 * len(w)))
            x += 12 * len(w) + 10
        toks.append(_tok(per_serve, 400, y))
        toks.append(_tok(per_100g, 750, y))
        y += 30
    return toks


def _row(label: str, per_serve: str, per_100g: str) -> ColumnRow:
    return ColumnRow(y=0.0, label_text=label, per_serve_text=per_serve, per_100g_text=per_100g,
                     key=match_nutrient_key(label))


# ---------------------------------------------------------------------------
# Column classifier
# ---------------------------------------------------------------------------

class TestColumnClustering:
    def test_numeric_token(self):
        assert is_numeric_token(_tok("5.0g", 0, 0))
        assert is_numeric_token(_tok("1250kJ", 0, 0))
        assert not is_numeric_token(_tok("5%", 0, 0))
        assert not is_numeric_token(_tok("Protein", 0, 0))
        assert not is_numeric_token(_tok("42", 0, 0))

    def test_two_columns(self):
        clusters = cluster_columns([0.40, 0.42, 0.45, 0.78, 0.80])
        assert len(clusters) == 2
        assert [c.token_count for c in clusters] == [3, 2]
        assert clusters[0].x_min == pytest.approx(0.40)
        assert clusters[1].x_max == pytest.approx(0.80)

    def test_merge_down_to_three(self):
        clusters = cluster_columns([0.1, 0.3, 0.5, 0.7, 0.9])
        assert len(clusters) == 3
        assert sum(c.token_count for c in clusters) == 5
        assert [c.id for c in clusters] == [0, 1, 2]

    def test_empty(self):
        assert cluster_columns([]) == []

    def test_classify_row_bands(self):
        toks = [_tok("Protein", 40, 0), _tok("5.0g", 400, 0), _tok("12%", 550, 0), _tok("8.3g", 750, 0)]
        assert classify_row(toks, PAGE_WIDTH) == ("Protein", "5.0g", "8.3g")

    def test_nutrition_row_filter(self):
        assert is_likely_nutrition_row(_row("Protein", "5.0g", "8.3g"))
        assert not is_likely_nutrition_row(_row("Avg Quantity", "per serve 5g", ""))
        assert not is_likely_nutrition_row(_row("Protein", "", ""))
        assert not is_likely_nutrition_row(_row("Servings", "8", ""))

    @pytest.mark.parametrize("label,key", [
        ("Energy", "energy"),
        ("Protein", "protein"),
        ("Fat, total", "fat_total"),
        ("Total Fat", "fat_total"),
        ("- saturated", "saturated"),
        ("Fat, saturated", "saturated"),
        ("Total Carbohydrate", "carbohydrate"),
        ("Carbs", "carbohydrate"),
        ("- sugars", "sugars"),
        ("Dietary Fiber", "fibre"),
        ("Sodium", "sodium"),
        ("Vitamin C", None),
    ])
    def test_label_key_rules(self, label, key):
        assert match_nutrient_key(label) == key

    def test_classify_panel(self):
        toks = _panel_tokens()
        layout = classify_columns(toks, build_lines(toks))
        assert layout.is_dual_column
        assert len(layout.clusters) == 2
        assert [r.key for r in layout.nutrition_rows] == [
            "energy", "protein", "fat_total", "saturated", "carbohydrate", "sodium",
        ]
        energy = layout.nutrition_rows[0]
        assert (energy.per_serve_text, energy.per_100g_text) == ("1250kJ", "2080kJ")
        assert all(r.has_both_values() for r in layout.nutrition_rows)

    def test_single_column_is_not_dual(self):
        toks = [_tok("Protein", 40, 100), _tok("5.0g", 400, 100), _tok("Sodium", 40, 130), _tok("120mg", 400, 130)]
        layout = classify_columns(toks, build_lines(toks))
        assert not layout.is_dual_column

    def test_ragged_single_column_is_not_dual(self):
        # values end up at two x positions, but no row fills both value bands
        toks = [
            _tok("Total", 40, 100), _tok("Fat", 110, 100), _tok("3g", 570, 100), _tok("5%", 800, 100),
            _tok("Sodium", 40, 130), _tok("300mg", 670, 130), _tok("13%", 800, 130),
            _tok("Protein", 40, 160), _tok("5g", 670, 160),
        ]
        layout = classify_columns(toks, build_lines(toks))
        assert len(layout.clusters) == 2
        assert layout.nutrition_rows
        assert not any(r.has_both_values() for r in layout.nutrition_rows)
        assert not layout.is_dual_column

    def test_page_width_fallback(self):
        toks = [Token(text="Protein", x_min=0, x_max=80, y_min=0, y_max=10),
                Token(text="5g", x_min=300, x_max=320, y_min=0, y_max=10)]
        layout = classify_columns(toks, build_lines(toks))
        assert layout.rows[0].per_100g_text == "5g"


# ---------------------------------------------------------------------------
# Nutrient mapper
# ---------------------------------------------------------------------------

class TestColumnParsers:
    def test_parse_value(self):
        assert parse_value("5.0g") == 5.0
        assert parse_value("<1g") == 1.0
        assert parse_value("5,000mg") == 5000.0
        assert parse_value("") is None

    def test_parse_energy_both_units(self):
        assert parse_energy("1250kJ (300Cal)") == {"energy_kj": 1250.0, "energy_kcal": 300.0}
        assert parse_energy("480 kcal") == {"energy_kcal": 480.0}
        assert parse_energy("") == {}

    def test_parse_fibre(self):
        assert parse_fibre("3.1g") == 3.1
        assert parse_fibre("3.1") == 3.1
        assert parse_fibre("310mg") is None
        assert parse_fibre("") is None

    def test_map_rows(self):
        rows = [
            _row("Energy", "1250kJ (300Cal)", "2080kJ (497Cal)"),
            _row("Protein", "5.0g", "8.3g"),
            _row("Protein", "9.9g", "9.9g"),
            _row("- saturated", "1.2g", "2.0g"),
            _row("Dietary Fibre", "2.1", "3.5"),
        ]
        readings = map_column_rows(rows)
        assert readings["energy_kj"].per_serve == 1250.0
        assert readings["energy_kj"].per_100g == 2080.0
        assert readings["energy_kcal"].per_serve == 300.0
        assert readings["energy_kcal"].per_100g == 497.0
        assert readings["protein_g"].per_serve == 5.0
        assert readings["fibre_g"].per_100g == 3.5
        assert "saturated" not in readings
        assert set(readings) == {"energy_kj", "energy_kcal", "protein_g", "fibre_g"}

    def test_parse_sodium(self):
        assert parse_sodium("120mg") == 120.0
        assert parse_sodium("0.3g") == 300.0
        assert parse_sodium("0.05 g") == 50.0
        assert parse_sodium("") is None

    def test_map_rows_sodium_in_grams(self):
        readings = map_column_rows([_row("Sodium", "0.3g", "0.5g")])
        assert readings["sodium_mg"].per_serve == 300.0
        assert readings["sodium_mg"].per_100g == 500.0


class TestValidateReadings:
    def test_consistent_columns_upgrade_to_med(self):
        out = validate_readings({"protein_g": ColumnReading(12.0, 20.0)}, 60.0)
        assert out.nutrients["protein_g"] == {"value": 12.0, "unit": "g", "confidence": "Med"}
        assert out.rejected == []

    def test_inconsistent_columns_rejected(self):
        out = validate_readings({"protein_g": ColumnReading(12.0, 100.0)}, 60.0)
        assert "protein_g" not in out.nutrients
        assert out.rejected[0]["key"] == "protein_g"
        assert out.rejected[0]["reason"] == "CROSS_COLUMN_DEVIATION"

    def test_loose_agreement_stays_low(self):
        out = validate_readings({"protein_g": ColumnReading(12.0, 28.0)}, 60.0)
        assert out.nutrients["protein_g"]["confidence"] == "Low"

    def test_sentinel_serving_skips_cross_check(self):
        out = validate_readings({"protein_g": ColumnReading(12.0, 100.0)}, 3.0)
        assert out.nutrients["protein_g"]["confidence"] == "Low"

    def test_per_100g_only_derived(self):
        out = validate_readings({"sodium_mg": ColumnReading(None, 200.0)}, 60.0)
        assert out.nutrients["sodium_mg"] == {"value": 120.0, "unit": "mg", "confidence": "Low"}

    def test_per_100g_only_without_serving_omitted(self):
        out = validate_readings({"sodium_mg": ColumnReading(None, 200.0)}, None)
        assert out.nutrients == {}

    def test_ceiling_veto(self):
        out = validate_readings({"sodium_mg": ColumnReading(6000.0, None)}, None)
        assert out.nutrients == {}
        assert out.rejected[0]["reason"] == "IMPLAUSIBLE"


class TestMergeSources:
    def test_flat_wins_parsed_fills(self):
        flat = {"protein_g": {"value": 5.0, "unit": "g", "confidence": "Med"}}
        parsed = {
            "protein_g": {"value": 6.0, "unit": "g", "confidence": "High"},
            "fat_g": {"value": 3.0, "unit": "g", "confidence": "High"},
        }
        merged = merge_nutrient_sources(flat, parsed)
        assert merged["protein_g"]["value"] == 5.0
        assert merged["fat_g"]["value"] == 3.0

    def test_implausible_flat_vetoed(self):
        rejected: list = []
        flat = {"protein_g": {"value": 150.0, "unit": "g", "confidence": "Low"}}
        parsed = {"protein_g": {"value": 6.0, "unit": "g", "confidence": "High"}}
        merged = merge_nutrient_sources(flat, parsed, rejected)
        assert merged["protein_g"]["value"] == 6.0
        assert rejected == [{"key": "protein_g", "reason": "IMPLAUSIBLE", "source": "flat", "per_serve": 150.0}]

    def test_cross_column_rejection_not_refilled(self):
        parsed = {"sugars_g": {"value": 12.0, "unit": "g", "confidence": "High"}}
        assert merge_nutrient_sources({}, parsed, vetoed=["sugars_g"]) == {}

    def test_canonical_key_order(self):
        parsed = {
            "sodium_mg": {"value": 300.0, "unit": "mg", "confidence": "High"},
            "energy_kj": {"value": 800.0, "unit": "kJ", "confidence": "High"},
        }
        assert list(merge_nutrient_sources({}, parsed)) == ["energy_kj", "sodium_mg"]


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

class TestConfidence:
    def test_cross_validate_med(self):
        assert cross_validate(12, 20, 60) == "Med"

    def test_cross_validate_reject(self):
        assert cross_validate(12, 100, 60) is None

    def test_cross_validate_without_per_100g(self):
        assert cross_validate(12, None, 60) == "Low"

    def test_high_base_never_downgraded(self):
        assert cross_validate(12, 20, 60, base="High") == "High"

    def test_serving_sentinel(self):
        assert resolve_serving_size(3) == 1.0
        assert resolve_serving_size(None) == 1.0
        assert resolve_serving_size(60) == 60.0
        assert not is_serving_detected(4.9)
        assert is_serving_detected(5)

    def test_relative_deviation_zero_expected(self):
        assert relative_deviation(0, 0, 60) == 0.0
        assert math.isinf(relative_deviation(0, 5, 60))

    def test_ceilings(self):
        assert is_plausible("protein_g", 100)
        assert not is_plausible("protein_g", 100.5)
        assert is_plausible("sodium_mg", 5000)
        assert not is_plausible("energy_kcal", 2600)
        assert not is_plausible("fibre_g", 61)
        assert not is_plausible("fat_g", -1)
        assert not is_plausible("fat_g", float("nan"))
