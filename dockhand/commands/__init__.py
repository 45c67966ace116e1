"""Dockhand CLI commands."""
