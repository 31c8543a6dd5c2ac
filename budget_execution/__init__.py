"""Quarterly budget execution balance engine."""
