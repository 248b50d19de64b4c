"""Shared helpers: logging and text normalization."""
