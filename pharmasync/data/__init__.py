"""Durable storage and the upstream business API client."""
