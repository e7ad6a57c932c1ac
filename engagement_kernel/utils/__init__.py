"""Utility functions for the engagement kernel."""

from engagement_kernel.utils.hashing import canonicalize_json, hash_bytes, hash_payload

__all__ = ["canonicalize_json", "hash_bytes", "hash_payload"]
