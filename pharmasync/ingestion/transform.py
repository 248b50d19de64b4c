"""Map raw upstream product records to catalog and inventory rows."""

from datetime import datetime, timezone
from typing import Any, Dict

from pharmasync.utils.text import (
    clean_html,
    clean_product_name,
    create_searchable_text,
    extract_dosage,
    is_prescription_required,
    map_category,
    split_tags,
)


def _int(value: Any) -> int:
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _str_or_none(value: Any):
    return None if value is None else str(value)


def transform_catalog(item: Dict[str, Any]) -> Dict[str, Any]:
    """Static catalog fields. The embedding is attached by the synchronizer."""
    now = datetime.now(timezone.utc)
    name = clean_product_name(item.get("PRODUCT_NAME") or item.get("NAME"))
    return {
        "id": str(item["PRODUCT_ID"]),
        "erp_code": _str_or_none(item.get("ERP_PRODUCT_CODE")),
        "internal_code": _str_or_none(item.get("INTERNAL_CODE")),
        "barcode": _str_or_none(item.get("BARCODE")),
        "name": name,
        "generic_name": clean_product_name(item.get("GENERIC_NAME")),
        "internal_name": clean_product_name(item.get("INTERNAL_NAME")),
        "english_name": clean_product_name(item.get("ENG_NAME")),
        "description": clean_html(item.get("DESCRIPTION")),
        "ingredients": clean_html(item.get("INGREDIENTS")),
        "instructions": clean_html(item.get("INSTRUCTIONS")),
        "warnings": clean_html(item.get("WARNINGS")),
        "category": map_category(item.get("CATEG_ID")),
        "category_id": _str_or_none(item.get("CATEG_ID")),
        "manufacturer": item.get("MANUFACTURE_NAME"),
        "brand": item.get("BRAND_NAME") or "",
        "volume": extract_dosage(name) or _str_or_none(item.get("VOLUME")),
        "is_prescription": is_prescription_required(item),
        "is_exclusive": item.get("IS_EXCLUSIVE") == "T",
        "is_new": item.get("IS_NEW") == "Y",
        "tags": split_tags(item.get("TAGS")),
        "searchable_text": create_searchable_text(item),
        "last_synced_at": now,
    }


def transform_inventory(item: Dict[str, Any]) -> Dict[str, Any]:
    """Volatile stock and price fields from the first STOCKS entry."""
    stocks = item.get("STOCKS") or [{}]
    stock = stocks[0] or {}
    return {
        "product_id": str(item["PRODUCT_ID"]),
        "available": _int(stock.get("AVAILABLE")),
        "onhand": _int(stock.get("ONHAND")),
        "promise": _int(stock.get("PROMISE")),
        "base_price": _float(item.get("BASE_PRICE")),
        "is_active": str(item.get("ACTIVE")) == "1",
        "facility_id": _str_or_none(stock.get("FACILITY_ID")),
        "facility_name": stock.get("FACILITY_NAME"),
        "store_id": _str_or_none(item.get("STORE_ID")),
        "last_api_sync": datetime.now(timezone.utc),
    }
