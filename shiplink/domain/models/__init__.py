"""Domain models: canonical results, value objects and health snapshots."""
