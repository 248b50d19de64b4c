"""
pharmasync - pharmaceutical catalog sync and drug-aware product search.

Ingests a paginated upstream catalog into a vector-indexed store, keeps a
Redis hot cache of inventory in front of it, and ranks search hits by
similarity plus drug, dosage and stock correctness.
"""

__version__ = "0.1.0"
