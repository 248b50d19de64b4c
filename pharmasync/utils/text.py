"""
Text cleanup for upstream catalog fields and normalization for matching.

Upstream product records carry HTML fragments in their long-text fields and a
placeholder string ("Цаг бүртгэх") glued onto some names. Everything that is
persisted goes through these helpers first.
"""

import re
import unicodedata
from typing import Any, Dict, Iterable, Optional

MAX_SEARCHABLE_TEXT = 8000

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_PLACEHOLDER_RE = re.compile(r"\s*-?\s*Цаг бүртгэх\s*", re.IGNORECASE)
_EDGE_DASH_RE = re.compile(r"^\s*-\s*|\s*-\s*$")

# The unit must not run on into a word ("200 гофен" is not 200 г)
DOSAGE_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(мг|мкг|г|мл|mg|mcg|g|ml)(?![^\W\d_])", re.IGNORECASE)

_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
)

CATEGORY_MAP = {
    "91": "gynecology",
    "127": "neurology",
    "154": "neurology",
    "116": "pain_relief",
    "55": "vitamins",
    "34": "medical_supplies",
}
DEFAULT_CATEGORY = "general"

PRESCRIPTION_KEYWORDS = ("тарилгын", "injection", "уусмал", "solution", "ампул")

# Mongolian Cyrillic letters folded onto their Russian counterparts for matching
_MN_FOLD = str.maketrans({"ө": "о", "ү": "у", "э": "е", "ё": "е"})


def clean_html(html: Optional[str]) -> str:
    """Strip tags and the handful of entities the upstream emits."""
    if not html:
        return ""
    text = _TAG_RE.sub("", html)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return text.strip()


def clean_product_name(name: Optional[str]) -> str:
    """Remove the booking placeholder, collapse whitespace and edge dashes."""
    if not name:
        return ""
    cleaned = _PLACEHOLDER_RE.sub("", name)
    cleaned = _WS_RE.sub(" ", cleaned)
    cleaned = _EDGE_DASH_RE.sub("", cleaned)
    return cleaned.strip()


def extract_dosage(name: Optional[str]) -> Optional[str]:
    """
    Return the first dosage token in a product name.

    Examples:
        "Парацетамол 500мг №10" -> "500мг"
        "Vitamin D3 400 mcg"    -> "400 mcg"
    """
    if not name:
        return None
    match = DOSAGE_RE.search(name)
    return match.group(0) if match else None


def map_category(category_id: Any) -> str:
    if category_id is None:
        return DEFAULT_CATEGORY
    return CATEGORY_MAP.get(str(category_id).strip(), DEFAULT_CATEGORY)


def is_prescription_required(product: Dict[str, Any]) -> bool:
    name = (product.get("PRODUCT_NAME") or "").lower()
    return any(keyword in name for keyword in PRESCRIPTION_KEYWORDS)


def create_searchable_text(product: Dict[str, Any]) -> str:
    """Join the descriptive fields of an upstream record into one embedding input."""
    parts: Iterable[Optional[str]] = (
        product.get("PRODUCT_NAME"),
        product.get("GENERIC_NAME"),
        product.get("INTERNAL_NAME"),
        product.get("MANUFACTURE_NAME"),
        clean_html(product.get("INGREDIENTS")),
        clean_html(product.get("DESCRIPTION")),
    )
    text = " ".join(p for p in parts if p)
    return _WS_RE.sub(" ", text).strip()[:MAX_SEARCHABLE_TEXT]


def split_tags(tags: Optional[str]) -> list:
    if not tags:
        return []
    return [t.strip() for t in str(tags).split(",") if t.strip()]


def normalize_for_match(text: Optional[str]) -> str:
    """
    Lowercase, drop Latin diacritics and fold Mongolian letters.

    NFKD is applied to non-Cyrillic characters only so letters such as
    "й" keep their identity.
    """
    if not text:
        return ""
    lowered = text.lower().translate(_MN_FOLD)
    out = []
    for ch in lowered:
        if ord(ch) < 0x0400:
            decomposed = unicodedata.normalize("NFKD", ch)
            out.append("".join(c for c in decomposed if not unicodedata.combining(c)))
        else:
            out.append(ch)
    return _WS_RE.sub(" ", "".join(out)).strip()
