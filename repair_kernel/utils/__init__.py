"""Utility helpers for the repair kernel."""
