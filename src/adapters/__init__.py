"""Terminals — process execution bindings for the engine.

Public re-exports for convenient access.
"""

from src.adapters.base import CommandContext, Terminal
from src.adapters.mock import MockTerminal
from src.adapters.shell.command import LocalTerminal

__all__ = [
    "CommandContext",
    "LocalTerminal",
    "MockTerminal",
    "Terminal",
]
