"""
Cache Package - response deduplication.
"""
from hypo.cache.response_cache import CacheEntry, CacheHit, ResponseCache, jaccard_similarity

__all__ = [
    "CacheEntry",
    "CacheHit",
    "ResponseCache",
    "jaccard_similarity",
]
