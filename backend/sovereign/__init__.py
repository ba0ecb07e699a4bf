"""Sovereign Credit Intelligence - closed-loop credit enforcement backend."""
__version__ = "1.0.0"
