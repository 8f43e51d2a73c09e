"""Identity cache for Gallerysync."""

from .identity import CacheStore, IdentityCache, cache_keys, title_text, url_basename

__all__ = ["CacheStore", "IdentityCache", "cache_keys", "title_text", "url_basename"]
