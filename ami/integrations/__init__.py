"""Connectors to external sources of raw memory material."""
