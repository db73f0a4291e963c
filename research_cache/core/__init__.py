"""Configuration, logging and exception types."""
