"""Shared infrastructure used across the journal and conversation domains."""
