"""Shared helpers: HTTP client, logging utilities and the error taxonomy."""
