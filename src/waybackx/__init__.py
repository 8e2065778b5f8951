"""Resolve archived URLs for domains from the Wayback Machine CDX index."""

__version__ = "0.1.0"
