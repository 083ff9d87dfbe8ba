"""Command-line interface for lingoworker."""
