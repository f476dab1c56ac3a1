"""Polymarket signal tracker - trade enrichment and market confidence signals."""

__version__ = "0.1.0"
