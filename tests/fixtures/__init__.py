"""Bundled resources used by the resource reader tests."""
