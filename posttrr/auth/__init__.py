"""Authentication utilities for the POSTTRR API."""

from posttrr.auth.api_key import generate_api_key, get_key_prefix, hash_api_key, issue_api_key

__all__ = [
    "generate_api_key",
    "hash_api_key",
    "get_key_prefix",
    "issue_api_key",
]
