"""Command-line entry points for Ariste."""
