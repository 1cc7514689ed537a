"""Presence and call signalling core for the GeoCall backend."""
