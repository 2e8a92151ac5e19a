"""
Label Attacher — recover the descriptive label left of each value.

For a candidate anchored at token i, walk leftward from i-1:
  - before the first word-like token, skip silently (row numbers, units,
    stray punctuation, other values on the same row)
  - then collect word-like / connector tokens until a number, a bare unit or
    a number+unit token stops the run
The run is reversed, joined and cleaned; any digit left after cleaning
rejects the label entirely (returns ""), which keeps a row's own numeric
prefix out of its label.

Serving size grams are usually printed in a parenthetical aside, so a g-unit
candidate on a "serving size" line is always labelled "Serving Size".
"""

from __future__ import annotations

import logging
import re
from typing import List, Sequence, Union

from .ocr_types import LabeledValueUnitCandidate, Line, ValueUnitCandidate
from .ocr_utils import clean_text, has_digit, normalize_line_for_extraction
from .parsers.unit_vocab import (
    CONNECTOR_RE,
    FILLER_WORDS,
    LINE_NUMBER_RE,
    TRAILING_PUNCT_RE,
    is_bare_unit,
    match_bare_number,
    match_combined,
)

log = logging.getLogger(__name__)

SERVING_SIZE_LABEL = "Serving Size"

_SERVING_SIZE_RE = re.compile(r"serving\s*size", re.IGNORECASE)
_LETTER_RE = re.compile(r"[A-Za-z]")
_LEADING_PUNCT_RE = re.compile(r"^[\s,:;/\-–—.*]+")
_WRAP_CHARS = "()[]{},;:*"


def _is_stop(text: str) -> bool:
    core = normalize_line_for_extraction(text).strip(_WRAP_CHARS)
    if not core:
        return False
    return (
        match_bare_number(core) is not None
        or is_bare_unit(core)
        or match_combined(core) is not None
    )


def _is_word(text: str) -> bool:
    return bool(_LETTER_RE.search(text))


def _is_connector(text: str) -> bool:
    return bool(CONNECTOR_RE.match(text))


def scan_label_tokens(texts: Sequence[str], index: int) -> List[str]:
    """Leftward scan from index-1; returns the label run in reading order."""
    collected: List[str] = []
    seen_word = False
    for k in range(index - 1, -1, -1):
        text = texts[k]
        if _is_stop(text):
            if seen_word:
                break
            continue
        if not seen_word:
            if _is_word(text):
                seen_word = True
                collected.append(text)
            continue
        if _is_word(text) or _is_connector(text):
            collected.append(text)
        else:
            break
    collected.reverse()
    return collected


def clean_label(raw: str) -> str:
    label = clean_text(raw)
    label = LINE_NUMBER_RE.sub("", label)
    label = _LEADING_PUNCT_RE.sub("", label)

    words = label.split(" ")
    while words and words[0].lower() in FILLER_WORDS:
        words.pop(0)
    label = " ".join(words)

    label = _LEADING_PUNCT_RE.sub("", label)
    label = TRAILING_PUNCT_RE.sub("", label).strip()

    if has_digit(label):
        return ""
    return label


def _label_from_tokens(line: Line, index: int) -> str:
    texts = [t.text for t in line.tokens]
    return clean_label(" ".join(scan_label_tokens(texts, index)))


def _label_from_text(cand: ValueUnitCandidate) -> str:
    norm = normalize_line_for_extraction(cand["line"])
    pos = cand["char_index"] if "char_index" in cand else norm.find(cand["raw"])
    prefix = norm[:pos] if pos >= 0 else ""
    words = prefix.split()
    return clean_label(" ".join(scan_label_tokens(words, len(words))))


def attach_labels(
    candidates: Sequence[ValueUnitCandidate],
    lines: Sequence[Union[Line, str]],
) -> List[LabeledValueUnitCandidate]:
    out: List[LabeledValueUnitCandidate] = []
    for cand in candidates:
        line = lines[cand["line_index"]] if 0 <= cand["line_index"] < len(lines) else None

        if isinstance(line, Line) and "token_index" in cand:
            label = _label_from_tokens(line, cand["token_index"])
        else:
            label = _label_from_text(cand)

        if cand["unit"] == "g" and _SERVING_SIZE_RE.search(cand["line"]):
            label = SERVING_SIZE_LABEL

        labeled: LabeledValueUnitCandidate = {**cand, "label": label}  # type: ignore[typeddict-item]
        out.append(labeled)

    log.debug("label attacher: candidates=%d unlabeled=%d",
              len(out), sum(1 for c in out if not c["label"]))
    return out
