"""Dockhand - deployment orchestration and Docker host control plane."""

__version__ = "1.0.0"
