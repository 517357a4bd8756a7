"""Clients for external services and the availability solver."""
