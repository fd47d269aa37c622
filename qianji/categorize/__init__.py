"""Keyword categorization."""
