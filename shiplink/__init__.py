"""shiplink: a resilient client layer for the Aramex shipping APIs.

Tracking and rate quotes go through a deduplicating response cache, a
per-transport rate limiter and a SOAP/HTTP fallback policy, observed by a
health monitor.
"""

__version__ = "0.1.0"
