"""
Core resolution engine.

The `DependencyResolver` walks a package's dependency graph, fanning out
over dependencies concurrently and populating the local package cache.
"""

from .resolver import DependencyResolver

__all__ = ["DependencyResolver"]
