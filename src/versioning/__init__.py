"""Identifier, version and requirement models plus their token parsers."""
