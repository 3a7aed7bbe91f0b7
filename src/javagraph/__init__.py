"""Java code graph construction and retrieval."""

from .config import Settings, load_settings
from .exceptions import JavaGraphError, NodeNotFoundError
from .pipeline import CodeGraphService, run_pipeline

__version__ = "0.1.0"

__all__ = [
    "CodeGraphService",
    "JavaGraphError",
    "NodeNotFoundError",
    "Settings",
    "load_settings",
    "run_pipeline",
]
