"""Domain Event definitions.

Represents significant occurrences in the resilience layer (calls started,
deferred, retried, failed over) that other parts of the system might react to.
"""
