"""Caching Service Implementation.

Provides the in-memory ResponseCache: TTL per key namespace, capacity
eviction and deduplication of concurrent computations.
Bounded Context: Cache Management
"""
