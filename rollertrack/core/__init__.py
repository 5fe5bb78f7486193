"""Shared paths, persistence, configuration and roller domain rules."""
