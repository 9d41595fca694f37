"""Keeps a split-flap message board showing fresh content."""

__version__ = "0.1.0"
