"""Exception hierarchy for the code graph engine.

Per-item failures (one file, one element, one edge) are logged and skipped
by the pipeline. The types below are what callers see when an operation
fails as a whole or a lookup is invalid.
"""


class JavaGraphError(Exception):
    """Base exception for all javagraph errors."""


class ConfigError(JavaGraphError, ValueError):
    """Configuration file is missing required values or holds invalid ones."""


class SourceRootError(JavaGraphError):
    """The source root does not exist or cannot be read. Aborts a rebuild."""


class ParseError(JavaGraphError):
    """A single source file could not be parsed.

    Recorded on the extraction result rather than raised, so one bad file
    never stops the rest of the tree from being indexed.
    """

    def __init__(self, file_path: str, reason: str):
        super().__init__(f"{file_path}: {reason}")
        self.file_path = file_path
        self.reason = reason


class EmbeddingError(JavaGraphError):
    """The embedding provider failed for one text."""


class DimensionMismatchError(JavaGraphError, ValueError):
    """Two vectors of different length were compared."""


class NodeNotFoundError(JavaGraphError, KeyError):
    """No element or embedding record exists for the requested key."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Node not found: {self.key}"


class UnsupportedQueryError(JavaGraphError):
    """A query request did not match any retrieval mode."""


class RebuildCancelled(JavaGraphError):
    """A rebuild was cancelled between batches."""
