"""Code extraction modules for parsing source files."""

from .java_extractor import ExtractionResult, JavaExtractor, find_java_files
from .snippets import enrich_nodes

__all__ = ["ExtractionResult", "JavaExtractor", "enrich_nodes", "find_java_files"]
