"""Console presentation for the CLI."""
