"""Candidate pre-filtering by exact drug / brand-synonym name match."""

from typing import List, Optional

from pharmasync.data.catalog_store import CatalogStore
from pharmasync.search.query_parser import ParsedQuery
from pharmasync.utils.logger import get_logger

logger = get_logger("search.prefilter")


def pre_filter(parsed: ParsedQuery, store: CatalogStore, limit: int = 50,
               category: Optional[str] = None) -> Optional[List[str]]:
    """
    Product ids whose name or generic name mentions the parsed drug or one
    of its brands.

    Returns None when the query names no drug, meaning "search the whole
    corpus". An empty list means the drug is known but nothing matched.
    """
    if parsed.drug is None:
        return None

    terms = parsed.search_terms
    ids = store.search_names(terms, limit=limit, category=category)
    logger.debug(f"Pre-filter for {parsed.drug_name}: {len(ids)} candidates from {len(terms)} terms")
    return ids
