"""Dependency graph model, cross-file resolution and formatting."""

from .model import AstNode, CodeDependency, DependencyGraph
from .resolver import ResolutionStats, resolve_cross_file
from .store import GraphSnapshot, GraphStore

__all__ = [
    "AstNode",
    "CodeDependency",
    "DependencyGraph",
    "GraphSnapshot",
    "GraphStore",
    "ResolutionStats",
    "resolve_cross_file",
]
