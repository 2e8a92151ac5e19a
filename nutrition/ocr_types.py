"""
Nutrition OCR Types — tokens, lines, candidates, rows and the label payload.

Geometry primitives (Token / Line) are frozen dataclasses: created once per OCR
word / reconstructed line and never mutated.

Everything that crosses the API surface (candidates, rows, nutrient records,
LabelData) is a TypedDict so the Flask layer can jsonify it directly.

The two OCR input shapes are modelled as an explicit tagged union
(FlatOcrPayload | StructuredOcrPayload); see contracts.parse_ocr_payload().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Literal, NotRequired, Optional, Tuple, TypedDict, Union


# ────────────────────────────────────────────────
# 🧩 Geometry primitives
# ────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Token:
    """
    One OCR word as an axis-aligned box.

    Coordinates are pixel-space (pre-normalized fractions are scaled up by the
    token normalizer). page_width is kept so the column classifier can work in
    0..1 space.
    """
    text: str
    x_min: float
    x_max: float
    y_min: float
    y_max: float
    conf: Optional[float] = None
    page_width: Optional[float] = None

    @property
    def y_mid(self) -> float:
        return (self.y_min + self.y_max) / 2.0

    @property
    def x_mid(self) -> float:
        return (self.x_min + self.x_max) / 2.0

    @property
    def height(self) -> float:
        return self.y_max - self.y_min


@dataclass(frozen=True, slots=True)
class Line:
    """A reconstructed text line: x-sorted tokens sharing a vertical band."""
    tokens: Tuple[Token, ...]
    text: str
    y_ref: float = 0.0


# ────────────────────────────────────────────────
# 📥 OCR input shapes (tagged union)
# ────────────────────────────────────────────────

Vertex = Dict[str, float]


@dataclass(frozen=True)
class OcrItem:
    text: str
    bounding_box: Tuple[Vertex, ...]


@dataclass(frozen=True)
class FlatOcrPayload:
    """{fullText, items: [{text, boundingBox}]} — Vision textAnnotations style."""
    full_text: str
    items: Tuple[OcrItem, ...]
    kind: Literal["flat"] = "flat"


@dataclass(frozen=True)
class OcrWord:
    text: str
    vertices: Tuple[Vertex, ...]
    confidence: Optional[float] = None
    block_id: int = 0
    para_id: int = 0


@dataclass(frozen=True)
class OcrPage:
    width: float
    height: float
    words: Tuple[OcrWord, ...]


@dataclass(frozen=True)
class StructuredOcrPayload:
    """page → block → paragraph → word → symbol tree, flattened to words."""
    full_text: str
    pages: Tuple[OcrPage, ...]
    kind: Literal["structured"] = "structured"


OcrPayload = Union[FlatOcrPayload, StructuredOcrPayload]


# ────────────────────────────────────────────────
# 🔢 Candidates and rows
# ────────────────────────────────────────────────

class ValueUnitCandidate(TypedDict):
    """
    Tentative (value, unit) reading.

    raw:         text as matched, e.g. "300mg", "13 g", "90"
    unit:        mg | g | kg | mcg | kJ | kcal | cal | ml | "" ("%" never survives)
    line:        original (un-normalized) line text
    token_index: anchor token in the line (token mode only)
    char_index:  match offset in the normalized line text (regex mode only)
    """
    raw: str
    value: float
    unit: str
    line: str
    line_index: int
    token_index: NotRequired[int]
    char_index: NotRequired[int]


class LabeledValueUnitCandidate(ValueUnitCandidate):
    label: str


class LabelRow(TypedDict):
    label: str
    primary: LabeledValueUnitCandidate
    alternates: List[LabeledValueUnitCandidate]


# ────────────────────────────────────────────────
# 🥣 Serving meta + nutrients
# ────────────────────────────────────────────────

Confidence = Literal["High", "Med", "Low"]
Basis = Literal["per_serve", "per_100g"]

NUTRIENT_KEYS: Tuple[str, ...] = (
    "energy_kj",
    "energy_kcal",
    "protein_g",
    "carbs_g",
    "fat_g",
    "sugars_g",
    "fibre_g",
    "sodium_mg",
)

NUTRIENT_UNITS: Dict[str, str] = {
    "energy_kj": "kJ",
    "energy_kcal": "kcal",
    "protein_g": "g",
    "carbs_g": "g",
    "fat_g": "g",
    "sugars_g": "g",
    "fibre_g": "g",
    "sodium_mg": "mg",
}


class ServingSize(TypedDict):
    value: float
    unit: str  # "g" | "ml" | ""


class ServingMeta(TypedDict):
    serving_size: Optional[ServingSize]
    servings_per_pack: Optional[float]


class NutrientRecord(TypedDict):
    value: float
    unit: str
    confidence: Confidence


NutrientMap = Dict[str, NutrientRecord]


class LabelData(TypedDict):
    """Terminal artifact handed to review/export consumers."""
    basis: Basis
    serving_size: ServingSize
    nutrients: NutrientMap


@dataclass
class ColumnReading:
    """Per-serve / per-100g pair for one canonical key, before validation."""
    per_serve: Optional[float] = None
    per_100g: Optional[float] = None
    source: str = "ocr"


class LabelResult(TypedDict):
    lines: List[str]
    rows: List[LabelRow]
    nutrients: NutrientMap
    serving: ServingMeta
    label: LabelData
    debug: NotRequired[Dict[str, object]]


__all__ = [
    "Token",
    "Line",
    "Vertex",
    "OcrItem",
    "FlatOcrPayload",
    "OcrWord",
    "OcrPage",
    "StructuredOcrPayload",
    "OcrPayload",
    "ValueUnitCandidate",
    "LabeledValueUnitCandidate",
    "LabelRow",
    "Confidence",
    "Basis",
    "NUTRIENT_KEYS",
    "NUTRIENT_UNITS",
    "ServingSize",
    "ServingMeta",
    "NutrientRecord",
    "NutrientMap",
    "LabelData",
    "ColumnReading",
    "LabelResult",
]
