"""Async runtime helpers: background task supervision and keyed locks."""
