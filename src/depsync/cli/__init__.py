"""Command line interface for depsync."""
