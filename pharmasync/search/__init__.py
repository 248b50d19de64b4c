"""Query understanding, candidate filtering and ranked product search."""
