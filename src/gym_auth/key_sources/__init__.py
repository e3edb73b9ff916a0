"""
Key source implementations for fetching the provider's JWKS document.

This package contains implementations of the KeySource protocol.
"""

from .supabase import SupabaseJWKSSource, issuer_for, jwks_url_for

__all__ = ["SupabaseJWKSSource", "issuer_for", "jwks_url_for"]
