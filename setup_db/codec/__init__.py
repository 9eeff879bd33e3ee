"""
Package Format Layer.

This package reads the two package formats: nuspec manifests (XML) and
nupkg archives (zip).
"""

from .archive import extract_primary_binary
from .manifest import parse_manifest, serialize_manifest

__all__ = ["extract_primary_binary", "parse_manifest", "serialize_manifest"]
