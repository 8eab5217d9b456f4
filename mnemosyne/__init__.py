"""Repositories for vault nodes, edges, layout positions, metadata and parse history over DB-API connections, with transaction handling."""

__version__ = "0.1.0"