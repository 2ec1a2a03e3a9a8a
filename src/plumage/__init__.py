"""Plumage - online pattern learning for AI-generated bird annotations."""

__version__ = "0.4.0"
