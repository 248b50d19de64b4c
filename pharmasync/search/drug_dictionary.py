"""
Curated drug dictionary: canonical generics, their spellings and brand names.

Variants cover the Mongolian/Russian Cyrillic spellings customers actually
type (including common misspellings) and Latin/INN names. Brands are trade
names that should be treated as the same drug when filtering candidates.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from pharmasync.utils.text import normalize_for_match


@dataclass(frozen=True)
class DrugEntry:
    canonical: str
    variants: Tuple[str, ...]
    brands: Tuple[str, ...] = ()

    @property
    def all_terms(self) -> Tuple[str, ...]:
        return self.variants + self.brands


DRUGS: List[DrugEntry] = [
    DrugEntry(
        "paracetamol",
        ("парацетамол", "парацэтамол", "парацэтэмол", "парацэтмөл", "paracetamol", "acetaminophen"),
        ("Панадол", "Эффералган", "Цефекон", "Panadol"),
    ),
    DrugEntry(
        "ibuprofen",
        ("ибупрофен", "ибупрафен", "ибупрофэн", "ibuprofen"),
        ("Ибумон", "Гофен", "Нурофен", "Nurofen", "Ibumon"),
    ),
    DrugEntry(
        "pantoprazole",
        ("пантопразол", "пантапразол", "pantoprazole"),
        ("Контролок", "Нольпаза", "Controloc"),
    ),
    DrugEntry(
        "omeprazole",
        ("омепразол", "омэпразол", "omeprazole"),
        ("Омез", "Лосек", "Omez"),
    ),
    DrugEntry(
        "aspirin",
        ("аспирин", "ацетилсалицил", "aspirin", "acetylsalicylic"),
        ("Кардиомагнил", "Тромбо АСС"),
    ),
    DrugEntry(
        "amoxicillin",
        ("амоксициллин", "амоксицилин", "амоксицилл", "amoxicillin"),
        ("Флемоксин", "Амоксиклав", "Augmentin"),
    ),
    DrugEntry(
        "metformin",
        ("метформин", "metformin"),
        ("Сиофор", "Глюкофаж", "Glucophage"),
    ),
    DrugEntry(
        "diclofenac",
        ("диклофенак", "диклофэнак", "diclofenac"),
        ("Вольтарен", "Ортофен", "Voltaren"),
    ),
    DrugEntry(
        "cetirizine",
        ("цетиризин", "цэтиризин", "cetirizine"),
        ("Зиртек", "Цетрин", "Zyrtec"),
    ),
    DrugEntry(
        "loratadine",
        ("лоратадин", "loratadine"),
        ("Кларитин", "Claritin"),
    ),
    DrugEntry(
        "ascorbic_acid",
        ("аскорбин", "витамин с", "vitamin c", "ascorbic"),
        (),
    ),
    DrugEntry(
        "drotaverine",
        ("дротаверин", "drotaverine"),
        ("Но-шпа", "Ношпа", "No-spa"),
    ),
]


@dataclass
class DrugMatch:
    entry: DrugEntry
    matched: str
    fuzzy: bool = False


class DrugDictionary:
    """Lookup over DrugEntry terms using normalized text."""

    def __init__(self, entries: Optional[Iterable[DrugEntry]] = None):
        self.entries: List[DrugEntry] = list(entries if entries is not None else DRUGS)
        # (normalized term, original term, entry), longest first so "ибупрофен"
        # wins over any shorter overlapping term
        terms = []
        for entry in self.entries:
            for term in entry.all_terms:
                terms.append((normalize_for_match(term), term, entry))
        self._terms = sorted(terms, key=lambda t: len(t[0]), reverse=True)

    def find(self, text: str) -> Optional[DrugMatch]:
        """Exact (normalized substring) match of any variant or brand."""
        normalized = normalize_for_match(text)
        if not normalized:
            return None
        for norm_term, term, entry in self._terms:
            if norm_term and norm_term in normalized:
                return DrugMatch(entry=entry, matched=term)
        return None

    def find_fuzzy(self, text: str, max_distance: int = 2) -> Optional[DrugMatch]:
        """
        Typo-tolerant match: a query word within max_distance edits of a
        variant. Only words of 6+ letters are considered.
        """
        words = [w for w in normalize_for_match(text).split() if len(w) >= 6 and w.isalpha()]
        best: Optional[Tuple[int, str, DrugEntry]] = None
        for word in words:
            for norm_term, term, entry in self._terms:
                if " " in norm_term or abs(len(norm_term) - len(word)) > max_distance:
                    continue
                distance = levenshtein_distance(word, norm_term)
                if distance <= max_distance and (best is None or distance < best[0]):
                    best = (distance, term, entry)
        if best is None:
            return None
        return DrugMatch(entry=best[2], matched=best[1], fuzzy=True)

    def contains_drug(self, entry: DrugEntry, text: Optional[str]) -> bool:
        """True if text mentions any variant or brand of the drug."""
        normalized = normalize_for_match(text)
        if not normalized:
            return False
        return any(normalize_for_match(term) in normalized for term in entry.all_terms)


def levenshtein_distance(a: str, b: str) -> int:
    """Compute Levenshtein distance between two strings."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


default_dictionary = DrugDictionary()
