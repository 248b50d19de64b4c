"""Periodic sync jobs and sync health."""
