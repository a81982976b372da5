"""Kart race lap tracker: timing feed in, longest-lap winner out."""

__version__ = "0.1.0"
