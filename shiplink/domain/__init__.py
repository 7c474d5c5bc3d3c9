"""Domain Layer: models, errors, events and interfaces.

Has no dependencies on the core or infrastructure layers.
"""
