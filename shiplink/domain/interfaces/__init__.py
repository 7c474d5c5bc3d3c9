"""Domain ports: the transport, cache and user interface contracts.

Services in the core layer depend only on these abstract classes; the
infrastructure layer provides the concrete adapters.
"""
