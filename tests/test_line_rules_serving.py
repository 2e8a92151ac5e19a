"""
Line rule table and serving meta resolver.

Covers:
  Line rules (nutrition/parsers/line_rules.py):
  - every rule exercised on its own through match_rule()
  - unit present → rule tier; unit missing → Med (or no match when required)
  - energy kJ / kcal pairs read in either order, spaced or not
  - mg → g and g → mg conversions drop to Med
  - saturated / trans lines never produce fat_g
  - percent readings never match; "Calories from fat" ignored
  - apply_line_rules(): first line wins per key

  Serving meta (nutrition/serving.py):
  - "Serving size … 30g" incl. parenthetical asides, ml servings
  - "Servings per package/pack/container … N" and "N servings per container"
  - first match wins, None when absent, Line objects accepted
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from nutrition.ocr_types import Line
from nutrition.parsers.line_rules import LINE_RULES, apply_line_rules, match_rule
from nutrition.serving import extract_serving_meta, match_serving_size, match_servings_per_pack


def _rule(name: str):
    return next(r for r in LINE_RULES if r.name == name)


# ---------------------------------------------------------------------------
# Line rules
# ---------------------------------------------------------------------------

class TestLineRules:
    def test_rule_names_unique(self):
        names = [r.name for r in LINE_RULES]
        assert len(names) == len(set(names))

    def test_energy_kj(self):
        assert match_rule(_rule("energy_kj"), "Energy 1,250kJ") == {"value": 1250.0, "unit": "kJ", "confidence": "High"}
        assert match_rule(_rule("energy_kj"), "Energy 300Cal") is None

    def test_energy_kcal_same_row_as_kj(self):
        rec = match_rule(_rule("energy_kcal"), "Energy 1250kJ (300Cal)")
        assert rec == {"value": 300.0, "unit": "kcal", "confidence": "High"}

    @pytest.mark.parametrize("line", ["Energy 1250 kJ 300 kcal", "Energy 300 kcal 1250 kJ", "Energy 1250kJ / 300 Cal"])
    def test_energy_both_units_any_order(self, line):
        assert match_rule(_rule("energy_kj"), line) == {"value": 1250.0, "unit": "kJ", "confidence": "High"}
        assert match_rule(_rule("energy_kcal"), line) == {"value": 300.0, "unit": "kcal", "confidence": "High"}

    def test_energy_value_not_split_mid_number(self):
        assert match_rule(_rule("energy_kcal"), "Energy 1250 kJ") is None

    def test_calories_unitless_is_med(self):
        assert match_rule(_rule("calories"), "Calories 90") == {"value": 90.0, "unit": "kcal", "confidence": "Med"}
        assert match_rule(_rule("calories"), "Calories 110 kcal")["confidence"] == "High"

    def test_calories_from_fat_ignored(self):
        assert match_rule(_rule("calories"), "Calories from Fat 45") is None

    @pytest.mark.parametrize("line,value,tier", [
        ("Protein 5.89 g", 5.89, "High"),
        ("Protein 5.0g 8.3g", 5.0, "High"),
        ("Protein 500mg", 0.5, "Med"),
        ("Protein 7", 7.0, "Med"),
    ])
    def test_protein_same_line(self, line, value, tier):
        rec = match_rule(_rule("protein_same_line"), line)
        assert rec == {"value": value, "unit": "g", "confidence": tier}

    def test_percent_never_matches(self):
        assert match_rule(_rule("protein_same_line"), "Protein 5%") is None

    @pytest.mark.parametrize("line", ["Total Fat 3g", "Fat, total 3g", "Fat 3 g"])
    def test_fat_total(self, line):
        assert match_rule(_rule("fat_total"), line)["value"] == 3.0

    @pytest.mark.parametrize("line", ["Saturated Fat 1g", "- saturated 1.2g", "Trans Fat 0g", "Fat, saturated 1g"])
    def test_fat_excludes_saturated_and_trans(self, line):
        assert match_rule(_rule("fat_total"), line) is None

    @pytest.mark.parametrize("line", ["Total Carbohydrate 27g", "Carbohydrate 27 g", "Carbs 27g"])
    def test_carbohydrate(self, line):
        assert match_rule(_rule("carbohydrate"), line)["value"] == 27.0

    def test_sugars(self):
        assert match_rule(_rule("sugars"), "Total Sugars 12g")["value"] == 12.0
        assert match_rule(_rule("sugars"), "Sugar 12g")["value"] == 12.0

    def test_fibre_unit_optional(self):
        assert match_rule(_rule("fibre"), "Dietary Fiber 4") == {"value": 4.0, "unit": "g", "confidence": "Med"}
        assert match_rule(_rule("fibre"), "Dietary Fibre 4g")["confidence"] == "High"

    def test_sodium(self):
        assert match_rule(_rule("sodium"), "Sodium 300mg") == {"value": 300.0, "unit": "mg", "confidence": "High"}
        assert match_rule(_rule("sodium"), "Sodium 0.3g") == {"value": 300.0, "unit": "mg", "confidence": "Med"}
        assert match_rule(_rule("sodium"), "Sodium 300") is None
        assert match_rule(_rule("sodium"), "Sodium Omg")["value"] == 0.0

    def test_apply_line_rules(self):
        out = apply_line_rules(["Total Fat 3g", "Sodium 300mg", "Calories 90"])
        assert out == {
            "fat_g": {"value": 3.0, "unit": "g", "confidence": "High"},
            "sodium_mg": {"value": 300.0, "unit": "mg", "confidence": "High"},
            "energy_kcal": {"value": 90.0, "unit": "kcal", "confidence": "Med"},
        }

    def test_first_line_wins(self):
        assert apply_line_rules(["Protein 5g", "Protein 7g"])["protein_g"]["value"] == 5.0

    def test_energy_pair_spaced_units(self):
        out = apply_line_rules(["Serving size 60g", "Energy 1250 kJ 300 kcal", "Protein 5 g"])
        assert out["energy_kj"]["value"] == 1250.0
        assert out["energy_kcal"]["value"] == 300.0
        assert out["protein_g"]["value"] == 5.0

    def test_explicit_energy_beats_later_calories(self):
        out = apply_line_rules(["Energy 1250kJ (300Cal)", "Calories 290"])
        assert out["energy_kcal"]["value"] == 300.0
        assert out["energy_kj"]["value"] == 1250.0


# ---------------------------------------------------------------------------
# Serving meta
# ---------------------------------------------------------------------------

class TestServingMeta:
    @pytest.mark.parametrize("line,expected", [
        ("Serving Size 60 g", {"value": 60.0, "unit": "g"}),
        ("Serving size: 1 cup (30g)", {"value": 30.0, "unit": "g"}),
        ("SERVING SIZE 250mL", {"value": 250.0, "unit": "ml"}),
        ("Serving size 3g", {"value": 3.0, "unit": "g"}),
        ("Serving size 2 biscuits", None),
        ("Protein 5g", None),
    ])
    def test_serving_size(self, line, expected):
        assert match_serving_size(line) == expected

    @pytest.mark.parametrize("line,expected", [
        ("Servings per package: 8", 8.0),
        ("Servings Per Pack 4", 4.0),
        ("Servings per container about 2.5", 2.5),
        ("about 8 servings per container", 8.0),
        ("Serving size 30g", None),
    ])
    def test_servings_per_pack(self, line, expected):
        assert match_servings_per_pack(line) == expected

    def test_extract_serving_meta(self):
        meta = extract_serving_meta([
            "Nutrition Information",
            "Servings per package: 8",
            "Serving size: 60g",
            "Serving size: 30g",
        ])
        assert meta == {"serving_size": {"value": 60.0, "unit": "g"}, "servings_per_pack": 8.0}

    def test_absent(self):
        assert extract_serving_meta(["Protein 5g"]) == {"serving_size": None, "servings_per_pack": None}
        assert extract_serving_meta([]) == {"serving_size": None, "servings_per_pack": None}

    def test_line_objects(self):
        line = Line(tokens=(), text="Serving Size 45g", y_ref=0.0)
        assert extract_serving_meta([line])["serving_size"] == {"value": 45.0, "unit": "g"}
