"""Core Application Layer: tracking and rate quote use cases.

The services compose the cache and the transport fallback; the command
handler turns CLI commands into service calls and renders the results.
"""
