"""
Domain models — commands, targets, packages and installer config.

All models are re-exported here for convenient access:

    from src.core.models import Command, Target, CommandPackage, InstallerConfig
"""

from src.core.models.command import Command, Target
from src.core.models.config import (
    AdminTarget,
    DBTarget,
    InstallConfig,
    InstallerConfig,
    OptionsConfig,
    OSTarget,
    SettingsConfig,
)
from src.core.models.package import CommandPackage, find_target, load_commands

__all__ = [
    # config.py
    "AdminTarget",
    # command.py
    "Command",
    # package.py
    "CommandPackage",
    "DBTarget",
    "InstallConfig",
    "InstallerConfig",
    "OSTarget",
    "OptionsConfig",
    "SettingsConfig",
    "Target",
    "find_target",
    "load_commands",
]
