"""
Tests for upstream text cleanup and record -> row transforms.
"""

from pharmasync.ingestion.transform import transform_catalog, transform_inventory
from pharmasync.utils.text import (
    MAX_SEARCHABLE_TEXT,
    clean_html,
    clean_product_name,
    create_searchable_text,
    extract_dosage,
    is_prescription_required,
    map_category,
    normalize_for_match,
    split_tags,
)
from tests.fakes import make_item


class TestCleanHtml:
    def test_strips_tags_and_entities(self):
        assert clean_html("<p>Өдөрт&nbsp;2 удаа &amp; <b>хоолны</b> дараа</p>") == "Өдөрт 2 удаа & хоолны дараа"

    def test_empty(self):
        assert clean_html(None) == ""
        assert clean_html("") == ""


class TestCleanProductName:
    def test_removes_booking_placeholder(self):
        assert clean_product_name("Парацетамол 500мг - Цаг бүртгэх") == "Парацетамол 500мг"

    def test_collapses_whitespace_and_edge_dashes(self):
        assert clean_product_name("  -  Аспирин   100мг  ") == "Аспирин 100мг"

    def test_none(self):
        assert clean_product_name(None) == ""


class TestExtractDosage:
    def test_cyrillic_unit(self):
        assert extract_dosage("Парацетамол 500мг №10") == "500мг"

    def test_latin_unit_with_space(self):
        assert extract_dosage("Vitamin D3 400 mcg") == "400 mcg"

    def test_decimal(self):
        assert extract_dosage("Сироп 2.5мл") == "2.5мл"

    def test_no_dosage(self):
        assert extract_dosage("Бинт") is None

    def test_unit_must_end_the_token(self):
        assert extract_dosage("Ибупрофен 200 гофен") is None
        assert extract_dosage("Ибупрофен 200 гофен 400мг") == "400мг"


class TestCategoryAndPrescription:
    def test_known_category(self):
        assert map_category("116") == "pain_relief"
        assert map_category(55) == "vitamins"

    def test_unknown_category_defaults(self):
        assert map_category("999") == "general"
        assert map_category(None) == "general"

    def test_prescription_keyword(self):
        assert is_prescription_required({"PRODUCT_NAME": "Диклофенак тарилгын уусмал 75мг"})
        assert not is_prescription_required({"PRODUCT_NAME": "Парацетамол 500мг"})


class TestSearchableText:
    def test_joins_descriptive_fields(self):
        text = create_searchable_text({
            "PRODUCT_NAME": "Парацетамол 500мг",
            "GENERIC_NAME": "Paracetamol",
            "DESCRIPTION": "<p>Өвдөлт намдаах</p>",
        })
        assert text == "Парацетамол 500мг Paracetamol Өвдөлт намдаах"

    def test_truncated(self):
        text = create_searchable_text({"PRODUCT_NAME": "а" * 10000})
        assert len(text) == MAX_SEARCHABLE_TEXT


class TestNormalizeForMatch:
    def test_folds_mongolian_letters(self):
        assert normalize_for_match("ПАРАЦЭТАМӨЛ") == "парацетамол"

    def test_strips_latin_diacritics(self):
        assert normalize_for_match("Café") == "cafe"

    def test_keeps_cyrillic_short_i(self):
        assert normalize_for_match("Йод") == "йод"


def test_split_tags():
    assert split_tags("өвдөлт, халуун ,, ") == ["өвдөлт", "халуун"]
    assert split_tags(None) == []


class TestTransformCatalog:
    def test_maps_fields(self):
        item = make_item("1001", "Парацетамол 500мг - Цаг бүртгэх", generic_name="Paracetamol",
                         TAGS="өвдөлт,халуун", IS_NEW="Y")
        row = transform_catalog(item)
        assert row["id"] == "1001"
        assert row["name"] == "Парацетамол 500мг"
        assert row["category"] == "pain_relief"
        assert row["volume"] == "500мг"
        assert row["tags"] == ["өвдөлт", "халуун"]
        assert row["is_new"] is True
        assert row["is_exclusive"] is False
        assert "embedding" not in row

    def test_volume_falls_back_to_upstream_field(self):
        row = transform_catalog(make_item("1002", "Бинт", VOLUME="5x10"))
        assert row["volume"] == "5x10"

    def test_numeric_id_is_stringified(self):
        assert transform_catalog(make_item(1003, "Бинт"))["id"] == "1003"


class TestTransformInventory:
    def test_first_stock_entry(self):
        row = transform_inventory(make_item("1001", "Парацетамол", available=12, price="1990.50"))
        assert row["available"] == 12
        assert row["onhand"] == 17
        assert row["base_price"] == 1990.5
        assert row["is_active"] is True
        assert row["facility_name"] == "Төв салбар"

    def test_negative_and_missing_stock(self):
        item = make_item("1001", "Парацетамол", active="0")
        item["STOCKS"] = [{"AVAILABLE": -4}]
        row = transform_inventory(item)
        assert row["available"] == 0
        assert row["onhand"] == 0
        assert row["is_active"] is False

    def test_no_stocks(self):
        item = make_item("1001", "Парацетамол")
        item["STOCKS"] = []
        assert transform_inventory(item)["available"] == 0
