"""Fetch RSS/Atom feeds and store their unseen items in SQLite."""

__version__ = "0.1.0"
