"""Configuration loading from config.yaml."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "JAVAGRAPH_CONFIG"


@dataclass
class PipelineSettings:
    """Limits for the parsing passes."""

    batch_size: int = 100
    max_nodes: int = 10000
    progress_interval: int = 5  # percent
    max_file_size_kb: int = 1000
    workers: int = 1


@dataclass
class EmbeddingSettings:
    """Limits for the embedding pass."""

    batch_size: int = 50
    max_embeddings: int = 5000
    progress_interval: int = 5  # percent
    workers: int = 1


@dataclass
class PgVectorSettings:
    """Connection settings for the optional PostgreSQL store."""

    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    table_name: str = "code_embeddings"


@dataclass
class Settings:
    """Top-level configuration."""

    project_id: Optional[str] = None
    location: str = "us-central1"
    embedding_model: str = "text-embedding-005"
    llm_model: str = "gemini-2.5-flash"
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    pgvector: PgVectorSettings = field(default_factory=PgVectorSettings)

    @classmethod
    def from_dict(cls, cfg: Optional[dict]) -> "Settings":
        """Build settings from a parsed config.yaml mapping.

        Missing sections fall back to defaults. Unknown keys inside a
        section are ignored.
        """
        cfg = cfg or {}
        gcp_config = cfg.get("gcp", {}) or {}
        rag_config = cfg.get("rag", {}) or {}

        settings = cls(
            project_id=gcp_config.get("project_id"),
            location=gcp_config.get("location", "us-central1"),
            embedding_model=rag_config.get("embedding_model", "text-embedding-005"),
            llm_model=rag_config.get("llm_model", "gemini-2.5-flash"),
            pipeline=_section(PipelineSettings, cfg.get("pipeline")),
            embedding=_section(EmbeddingSettings, cfg.get("embedding")),
            pgvector=_section(PgVectorSettings, rag_config.get("pgvector")),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ConfigError if any limit is out of range."""
        for name in ("batch_size", "max_nodes", "max_file_size_kb", "workers"):
            _require_positive(f"pipeline.{name}", getattr(self.pipeline, name))
        for name in ("batch_size", "max_embeddings", "workers"):
            _require_positive(f"embedding.{name}", getattr(self.embedding, name))
        for section, value in (
            ("pipeline", self.pipeline.progress_interval),
            ("embedding", self.embedding.progress_interval),
        ):
            if not isinstance(value, int) or not 1 <= value <= 100:
                raise ConfigError(
                    f"{section}.progress_interval must be between 1 and 100, got {value!r}"
                )

    @property
    def has_project(self) -> bool:
        return bool(self.project_id) and self.project_id != "YOUR_PROJECT_ID"


def _section(section_cls, data: Optional[dict]):
    if not data:
        return section_cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping for {section_cls.__name__}, got {type(data).__name__}")
    known = section_cls.__dataclass_fields__
    return section_cls(**{k: v for k, v in data.items() if k in known})


def _require_positive(name: str, value) -> None:
    if not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")


def find_config(explicit: Optional[Path] = None) -> Optional[Path]:
    """Locate config.yaml.

    Checks, in order: an explicit path, the JAVAGRAPH_CONFIG environment
    variable, ``config/config.yaml`` in the working directory and in the
    project root.
    """
    candidates = []
    if explicit:
        candidates.append(Path(explicit))
    if os.environ.get(CONFIG_ENV_VAR):
        candidates.append(Path(os.environ[CONFIG_ENV_VAR]))
    candidates.append(Path("config/config.yaml"))
    candidates.append(Path(__file__).resolve().parents[2] / "config" / "config.yaml")

    for path in candidates:
        if path.exists():
            return path
    return None


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from config.yaml, or defaults if none is found.

    Args:
        path: Explicit config file. If given it must exist.

    Returns:
        Validated Settings
    """
    if path is not None and not Path(path).exists():
        raise ConfigError(f"Config file not found: {path}")

    config_path = find_config(path)
    if config_path is None:
        logger.info("No config.yaml found, using defaults")
        return Settings()

    try:
        with open(config_path) as f:
            cfg = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    logger.debug("Loaded configuration from %s", config_path)
    return Settings.from_dict(cfg)
