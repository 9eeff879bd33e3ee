"""
setup-db: resolves NuGet database driver packages into a local cache.
"""

__version__ = "1.0.0"
