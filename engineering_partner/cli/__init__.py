"""CLI module - Typer application."""
