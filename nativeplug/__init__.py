"""
nativeplug - Native plugin management for cross-platform mobile projects.

This is the main package that exports the public API: the plugins service,
the project model and the process options.
"""

__version__ = "0.1.0"

from nativeplug.config import Options, load_options
from nativeplug.plugin.classifier import PluginRecord
from nativeplug.plugin.service import (
    InvalidPluginError,
    PluginError,
    PluginsService,
)
from nativeplug.project import Platform, ProjectContext

__all__ = [
    "__version__",
    "InvalidPluginError",
    "Options",
    "Platform",
    "PluginError",
    "PluginRecord",
    "PluginsService",
    "ProjectContext",
    "load_options",
]
