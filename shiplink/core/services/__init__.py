"""Application services for tracking and rate quotes."""
