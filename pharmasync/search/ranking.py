"""
Pharmaceutical-aware re-ranking of similarity hits.

Embedding similarity alone ranks "Пантопразол 40мг" close to
"Парацетамол 500мг" for a paracetamol query; these adjustments push the
right drug and dosage up and the wrong drug down.
"""

from typing import List, Optional, Tuple

from pharmasync.search.drug_dictionary import DrugDictionary, default_dictionary
from pharmasync.search.query_parser import ParsedQuery, parse_dosage, to_milligrams
from pharmasync.search.results import SearchCandidate

DRUG_MATCH_BOOST = 0.40
EXACT_DOSAGE_BOOST = 0.30
NEAR_DOSAGE_BOOST = 0.15
WRONG_DRUG_PENALTY = -0.50
IN_STOCK_BOOST = 0.10
WELL_STOCKED_BOOST = 0.05
OUT_OF_STOCK_PENALTY = -0.20

NEAR_DOSAGE_TOLERANCE = 0.20
WELL_STOCKED_THRESHOLD = 50


def _comparable(value: float, unit: str) -> Tuple[float, str]:
    mg = to_milligrams(value, unit)
    if mg is not None:
        return mg, "mass"
    return value, unit


def dosage_adjustment(parsed: ParsedQuery, candidate: SearchCandidate) -> Tuple[float, Optional[str]]:
    """(boost, reason) for the product's dosage relative to the query's."""
    if parsed.dosage_value is None or not parsed.dosage_unit:
        return 0.0, None

    product_dosage = parse_dosage(candidate.name) or parse_dosage(candidate.product.get("volume") or "")
    if product_dosage is None:
        return 0.0, None

    query_value, query_kind = _comparable(parsed.dosage_value, parsed.dosage_unit)
    product_value, product_kind = _comparable(*product_dosage)
    if query_kind != product_kind:
        return 0.0, None

    if abs(query_value - product_value) < 1e-9:
        return EXACT_DOSAGE_BOOST, "exact_dosage"

    larger = max(query_value, product_value)
    if larger > 0 and abs(query_value - product_value) / larger <= NEAR_DOSAGE_TOLERANCE + 1e-9:
        return NEAR_DOSAGE_BOOST, "near_dosage"
    return 0.0, None


def score_candidate(candidate: SearchCandidate, parsed: ParsedQuery,
                    dictionary: DrugDictionary = default_dictionary) -> float:
    """Compute final_score and ranking_reasons in place; returns the score."""
    score = candidate.similarity
    reasons: List[str] = []

    if parsed.drug is not None:
        names = f"{candidate.name} {candidate.product.get('generic_name') or ''}"
        if dictionary.contains_drug(parsed.drug, names):
            score += DRUG_MATCH_BOOST
            reasons.append("drug_match")
        else:
            score += WRONG_DRUG_PENALTY
            reasons.append("wrong_drug")

    boost, reason = dosage_adjustment(parsed, candidate)
    if reason:
        score += boost
        reasons.append(reason)

    available = candidate.available
    if available > 0:
        score += IN_STOCK_BOOST
        reasons.append("in_stock")
        if available > WELL_STOCKED_THRESHOLD:
            score += WELL_STOCKED_BOOST
            reasons.append("well_stocked")
    else:
        score += OUT_OF_STOCK_PENALTY
        reasons.append("out_of_stock")

    candidate.final_score = score
    candidate.ranking_reasons = reasons
    return score


def rank_candidates(candidates: List[SearchCandidate], parsed: ParsedQuery,
                    limit: Optional[int] = None,
                    dictionary: DrugDictionary = default_dictionary) -> List[SearchCandidate]:
    """Score, sort descending by final_score and optionally truncate."""
    for candidate in candidates:
        score_candidate(candidate, parsed, dictionary)
    ranked = sorted(candidates, key=lambda c: c.final_score, reverse=True)
    return ranked[:limit] if limit is not None else ranked
