"""Test helper utilities for jobfeed tests."""

from .static_adapter import StaticAdapter, make_posting

__all__ = ["StaticAdapter", "make_posting"]
