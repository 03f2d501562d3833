"""Canonical digests, payload validation and the error taxonomy."""
