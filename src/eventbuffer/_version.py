"""
Single source of the package version.

Read by hatchling at build time (``[tool.hatch.version]``); release builds
bump this value.
"""

__version__ = "0.1.0"
