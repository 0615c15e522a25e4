"""Washman adapters for external systems."""
