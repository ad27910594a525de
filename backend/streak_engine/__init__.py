"""Mastery and streak tracking engine."""

__version__ = "0.1.0"
