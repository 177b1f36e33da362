"""Typer-based `quote-ch` command line interface."""
