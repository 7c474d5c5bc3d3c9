"""API Resilience Implementations.

Contains the per-key rate limiter with backoff retries and the
dual-transport fallback policy.
Bounded Context: API Resilience
"""
