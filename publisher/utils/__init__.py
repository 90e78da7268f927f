"""Shared helpers for publisher."""
