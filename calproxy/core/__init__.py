"""Configuration, outbound HTTP, metrics and health tracking."""
