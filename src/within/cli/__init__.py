"""Command-line interface for within."""
