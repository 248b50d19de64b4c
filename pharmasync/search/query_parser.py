"""
Query parser: extract the drug and dosage from a free-text product query.

Handles queries like:
  "парацетамол 500мг", "парацэтамол 400", "nurofen 200 mg", "ибупрафен"

The parsed drug drives candidate pre-filtering and the wrong-drug penalty in
ranking; the dosage drives the exact/near dosage boosts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pharmasync.search.drug_dictionary import DrugDictionary, DrugEntry, default_dictionary
from pharmasync.utils.text import DOSAGE_RE

# Canonical unit spelling
UNIT_MAP: Dict[str, str] = {
    "mg": "мг",
    "мг": "мг",
    "mcg": "мкг",
    "мкг": "мкг",
    "ml": "мл",
    "мл": "мл",
    "g": "г",
    "г": "г",
}

# Conversion factors to milligrams (мл is not comparable to mass units)
_TO_MG: Dict[str, float] = {"мг": 1.0, "мкг": 0.001, "г": 1000.0}

_BARE_NUMBER_RE = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)(?![\d.])")

BARE_DOSAGE_MIN = 1
BARE_DOSAGE_MAX = 5000


@dataclass
class ParsedQuery:
    raw: str
    drug_name: Optional[str] = None
    drug_variant_matched: Optional[str] = None
    dosage_value: Optional[float] = None
    dosage_unit: Optional[str] = None
    fuzzy_match: bool = False
    drug: Optional[DrugEntry] = field(default=None, repr=False)

    @property
    def full_dosage(self) -> Optional[str]:
        """Dosage as written on packaging, e.g. "500мг" or "2.5мл"."""
        if self.dosage_value is None or not self.dosage_unit:
            return None
        value = self.dosage_value
        text = str(int(value)) if float(value).is_integer() else str(value)
        return f"{text}{self.dosage_unit}"

    @property
    def search_terms(self) -> List[str]:
        """All spellings and brands of the parsed drug (empty if none)."""
        if self.drug is None:
            return []
        return list(self.drug.all_terms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drug_name": self.drug_name,
            "drug_variant_matched": self.drug_variant_matched,
            "dosage_value": self.dosage_value,
            "dosage_unit": self.dosage_unit,
            "full_dosage": self.full_dosage,
            "fuzzy_match": self.fuzzy_match,
        }


def normalize_unit(unit: Optional[str]) -> Optional[str]:
    if not unit:
        return None
    return UNIT_MAP.get(unit.lower())


def parse_dosage(text: str) -> Optional[tuple]:
    """(value, canonical_unit) of the first dosage token in text."""
    if not text:
        return None
    m = DOSAGE_RE.search(text)
    if not m:
        return None
    unit = normalize_unit(m.group(2))
    if unit is None:
        return None
    return float(m.group(1)), unit


def to_milligrams(value: float, unit: str) -> Optional[float]:
    factor = _TO_MG.get(unit)
    return value * factor if factor is not None else None


def _extract_bare_dosage(text: str) -> Optional[float]:
    for m in _BARE_NUMBER_RE.finditer(text):
        value = float(m.group(1))
        if BARE_DOSAGE_MIN <= value <= BARE_DOSAGE_MAX:
            return value
    return None


def parse_query(text: str, dictionary: DrugDictionary = default_dictionary) -> ParsedQuery:
    """
    Parse a free-text query into drug + dosage.

    A bare number (1-5000) only counts as a dosage when a drug was found,
    and then defaults to мг.
    """
    raw = text or ""
    parsed = ParsedQuery(raw=raw)
    if not raw.strip():
        return parsed

    match = dictionary.find(raw) or dictionary.find_fuzzy(raw)
    if match is not None:
        parsed.drug = match.entry
        parsed.drug_name = match.entry.canonical
        parsed.drug_variant_matched = match.matched
        parsed.fuzzy_match = match.fuzzy

    dosage = parse_dosage(raw)
    if dosage is not None:
        parsed.dosage_value, parsed.dosage_unit = dosage
    elif parsed.drug is not None:
        bare = _extract_bare_dosage(raw)
        if bare is not None:
            parsed.dosage_value, parsed.dosage_unit = bare, "мг"

    return parsed
