"""
Plugin System - installation, removal and native preparation of plugins.

This package handles:
- Plugin classification from package metadata
- Runtime version compatibility checks
- Project manifest dependency updates
- Content-hash based native build cache
- Install/remove orchestration
"""

__all__ = []
