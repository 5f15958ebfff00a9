"""Command-line interface for domain-sync."""
