"""Utility helpers for the page translator."""
