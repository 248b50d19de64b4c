"""
Tests for pharmaceutical re-ranking: drug match/mismatch, dosage
boosts and stock adjustments.
"""

import pytest

from pharmasync.data.schemas import InventoryView
from pharmasync.search.query_parser import parse_query
from pharmasync.search.ranking import (
    DRUG_MATCH_BOOST,
    EXACT_DOSAGE_BOOST,
    IN_STOCK_BOOST,
    NEAR_DOSAGE_BOOST,
    OUT_OF_STOCK_PENALTY,
    dosage_adjustment,
    rank_candidates,
    score_candidate,
)
from pharmasync.search.results import SearchCandidate


def candidate(product_id, name, similarity=0.6, available=30, generic_name=None, volume=None):
    inventory = InventoryView(product_id=product_id, available=available, is_active=True)
    product = {"id": product_id, "name": name, "generic_name": generic_name, "volume": volume}
    return SearchCandidate(product=product, inventory=inventory, similarity=similarity)


class TestDrugAdjustment:
    def test_right_drug_beats_similar_wrong_drug(self):
        parsed = parse_query("парацетамол 500мг")
        right = candidate("1", "Парацетамол 500мг", similarity=0.60)
        wrong = candidate("2", "Пантопразол 40мг", similarity=0.65)

        ranked = rank_candidates([wrong, right], parsed)

        assert ranked[0].id == "1"
        assert ranked[0].final_score - ranked[1].final_score >= 0.5
        assert "wrong_drug" in wrong.ranking_reasons

    def test_bare_dosage_query_separates_drugs(self):
        parsed = parse_query("парацетамол 400")
        right = candidate("1", "Парацетамол 500мг", similarity=0.60)
        wrong = candidate("2", "Пантопразол 40мг", similarity=0.65)

        score_candidate(right, parsed)
        score_candidate(wrong, parsed)

        assert right.final_score - wrong.final_score >= 0.5
        assert "near_dosage" in right.ranking_reasons

    def test_generic_name_counts_as_drug_match(self):
        parsed = parse_query("парацетамол")
        branded = candidate("1", "Панадол экстра", generic_name="Paracetamol")
        score_candidate(branded, parsed)
        assert "drug_match" in branded.ranking_reasons

    def test_brand_counts_as_drug_match(self):
        parsed = parse_query("ибупрофен")
        brand = candidate("1", "Нурофен 200мг")
        score_candidate(brand, parsed)
        assert "drug_match" in brand.ranking_reasons

    def test_no_drug_in_query_no_adjustment(self):
        parsed = parse_query("хүүхдийн тос")
        c = candidate("1", "Пантопразол 40мг", similarity=0.7)
        score_candidate(c, parsed)
        assert c.final_score == pytest.approx(0.7 + IN_STOCK_BOOST)


class TestDosageAdjustment:
    def test_exact(self):
        boost, reason = dosage_adjustment(parse_query("парацетамол 500мг"), candidate("1", "Парацетамол 500мг"))
        assert (boost, reason) == (EXACT_DOSAGE_BOOST, "exact_dosage")

    def test_exact_across_units(self):
        boost, _ = dosage_adjustment(parse_query("парацетамол 500мг"), candidate("1", "Парацетамол 0.5г"))
        assert boost == EXACT_DOSAGE_BOOST

    def test_near(self):
        boost, reason = dosage_adjustment(parse_query("парацетамол 500мг"), candidate("1", "Парацетамол 400мг"))
        assert (boost, reason) == (NEAR_DOSAGE_BOOST, "near_dosage")

    def test_far(self):
        boost, reason = dosage_adjustment(parse_query("парацетамол 500мг"), candidate("1", "Парацетамол 250мг"))
        assert (boost, reason) == (0.0, None)

    def test_volume_field_used_when_name_has_none(self):
        boost, _ = dosage_adjustment(parse_query("парацетамол 500мг"),
                                     candidate("1", "Парацетамол", volume="500мг"))
        assert boost == EXACT_DOSAGE_BOOST

    def test_mass_and_volume_not_compared(self):
        boost, _ = dosage_adjustment(parse_query("ибупрофен 100мг"), candidate("1", "Ибупрофен сироп 100мл"))
        assert boost == 0.0

    def test_exact_beats_near(self):
        parsed = parse_query("парацетамол 500мг")
        near = candidate("1", "Парацетамол 400мг", similarity=0.62)
        exact = candidate("2", "Парацетамол 500мг", similarity=0.60)
        assert rank_candidates([near, exact], parsed)[0].id == "2"


class TestStockAdjustment:
    def test_out_of_stock_penalized(self):
        parsed = parse_query("парацетамол 500мг")
        c = candidate("1", "Парацетамол 500мг", similarity=0.5, available=0)
        score = score_candidate(c, parsed)
        assert score == pytest.approx(0.5 + DRUG_MATCH_BOOST + EXACT_DOSAGE_BOOST + OUT_OF_STOCK_PENALTY)
        assert "out_of_stock" in c.ranking_reasons

    def test_missing_inventory_counts_as_out_of_stock(self):
        c = SearchCandidate(product={"id": "1", "name": "Бинт"}, inventory=None, similarity=0.5)
        score_candidate(c, parse_query("бинт"))
        assert c.final_score == pytest.approx(0.5 + OUT_OF_STOCK_PENALTY)
        assert c.data_source == "no_inventory_record"

    def test_well_stocked_bonus(self):
        c = candidate("1", "Бинт", similarity=0.5, available=80)
        score_candidate(c, parse_query("бинт"))
        assert "well_stocked" in c.ranking_reasons


def test_rank_truncates_to_limit():
    parsed = parse_query("парацетамол")
    ranked = rank_candidates([candidate(str(i), "Парацетамол") for i in range(5)], parsed, limit=2)
    assert len(ranked) == 2
