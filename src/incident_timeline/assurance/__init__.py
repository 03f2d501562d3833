"""Assurance utilities such as structured operation logging."""

__all__ = ["logging"]

from . import logging  # noqa: F401
