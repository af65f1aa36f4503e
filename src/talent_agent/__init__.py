"""Talent Agent - conversational talent search from the terminal."""

__version__ = "0.3.0"
