"""
Dockhand CLI Base Command Classes

Abstract base classes for consistent command structure.
"""

from .base_command import BaseCommand
from .control_command import ControlCommand

__all__ = [
    "BaseCommand",
    "ControlCommand",
]
