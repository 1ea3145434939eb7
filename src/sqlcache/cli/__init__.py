"""Command line tools for cache tables."""
