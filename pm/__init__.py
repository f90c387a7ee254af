"""
pm - command-line front end for plugin management.

Adds and removes plugins of a mobile application project and prepares
their native code for the installed platforms.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
