"""Configuration loading and provider credentials."""
