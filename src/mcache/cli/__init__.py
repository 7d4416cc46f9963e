"""Command-line interface for the media cache."""
