"""Utility modules for fetcher."""

from .sanitizer import (
    add_sensitive_keys,
    mask_headers,
    mask_sensitive_data,
    mask_url,
)

__all__ = [
    'mask_sensitive_data',
    'mask_url',
    'mask_headers',
    'add_sensitive_keys',
]
