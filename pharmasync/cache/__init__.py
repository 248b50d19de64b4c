"""Hot cache and cache-tier resolution."""
